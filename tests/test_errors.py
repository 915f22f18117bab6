import unittest

import httpx

from familysafe.core.errors import (
    ConflictError, ErrorKind, FamilySafeError, GeolocationError, NotFoundError, PermissionDeniedError,
    ServiceError, TransientNetworkError, ValidationError, is_not_found, optional_text, require, service_error,
)
from fakes import api_error, not_found_error


class ServiceErrorTest(unittest.TestCase):
    def test_postgrest_codes_map_to_kinds(self):
        cases = {
            "PGRST116": NotFoundError,
            "23505": ConflictError,
            "42501": PermissionDeniedError,
            "23503": ValidationError,
            "XX000": ServiceError,
        }
        for code, expected in cases.items():
            with self.subTest(code=code):
                error = service_error(api_error(code, "boom"), "Failed", member_id="m1")
                self.assertIsInstance(error, expected)
                self.assertEqual(error.context["code"], code)
                self.assertEqual(error.context["member_id"], "m1")
                self.assertIn("boom", error.message)

    def test_transport_errors_are_transient(self):
        error = service_error(httpx.ConnectError("connection refused"), "Failed to load")
        self.assertIsInstance(error, TransientNetworkError)
        self.assertEqual(error.kind, ErrorKind.TRANSIENT)
        self.assertEqual(error.status_code, 503)

    def test_unknown_exceptions_are_service_errors(self):
        error = service_error(RuntimeError("nope"), "Failed")
        self.assertIsInstance(error, ServiceError)
        self.assertEqual(error.message, "Failed: nope")

    def test_typed_errors_pass_through(self):
        original = ValidationError("bad")
        self.assertIs(service_error(original, "ignored"), original)

    def test_is_not_found(self):
        self.assertTrue(is_not_found(not_found_error()))
        self.assertTrue(is_not_found(NotFoundError("gone")))
        self.assertFalse(is_not_found(api_error("23505")))


class HelpersTest(unittest.TestCase):
    def test_require(self):
        require(True, "unused")
        with self.assertRaises(ValidationError) as ctx:
            require(False, "Name is required", field="name")
        self.assertEqual(ctx.exception.to_dict(), {
            "kind": "validation",
            "detail": "Name is required",
            "context": {"field": "name"},
        })

    def test_optional_text(self):
        self.assertIsNone(optional_text(None))
        self.assertIsNone(optional_text("   "))
        self.assertEqual(optional_text(" 090 "), "090")

    def test_geolocation_error_kinds(self):
        denied = GeolocationError(GeolocationError.PERMISSION_DENIED)
        self.assertEqual(denied.kind, ErrorKind.PERMISSION)
        self.assertIn("permission", denied.message.lower())
        timeout = GeolocationError(GeolocationError.TIMEOUT)
        self.assertEqual(timeout.kind, ErrorKind.TRANSIENT)
        self.assertIsInstance(timeout, FamilySafeError)
