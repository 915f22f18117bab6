import unittest
from datetime import datetime, timezone

from familysafe.core.geo import address_label, distance_in_meters, haversine_km
from familysafe.core.timeutil import as_utc, today_iso


class GeoTest(unittest.TestCase):
    def test_haversine_tokyo_osaka(self):
        # Tokyo Station to Osaka Station is roughly 400 km as the crow flies
        distance = haversine_km(35.6812, 139.7671, 34.7025, 135.4959)
        self.assertAlmostEqual(distance, 403, delta=5)

    def test_same_point_is_zero(self):
        self.assertEqual(distance_in_meters(35.0, 139.0, 35.0, 139.0), 0.0)

    def test_short_distance_in_meters(self):
        # 0.0009 degrees of latitude is about 100 m
        self.assertAlmostEqual(distance_in_meters(35.0, 139.0, 35.0009, 139.0), 100, delta=1)

    def test_address_label(self):
        self.assertEqual(address_label(35.68123456, 139.7671), "Lat: 35.6812, Lng: 139.7671")
        self.assertEqual(address_label(-1.5, 2), "Lat: -1.5000, Lng: 2.0000")


class TimeUtilTest(unittest.TestCase):
    def test_as_utc_parses_strings(self):
        self.assertEqual(as_utc("2026-10-17T08:00:00Z"), datetime(2026, 10, 17, 8, tzinfo=timezone.utc))
        self.assertEqual(as_utc("2026-10-17T08:00:00"), datetime(2026, 10, 17, 8, tzinfo=timezone.utc))
        self.assertIsNone(as_utc(None))

    def test_today_iso_uses_utc_date(self):
        self.assertEqual(today_iso(datetime(2026, 10, 17, 23, 59, tzinfo=timezone.utc)), "2026-10-17")
