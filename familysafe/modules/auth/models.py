# Supabase Auth
# This module uses Supabase's built-in authentication system
# The app-level identity lives in the profiles table (see modules/profiles/models.py)

"""
Supabase Auth provides:
- auth.sign_up() - Register new users (email + password)
- auth.sign_in_with_password() - Authenticate users
- auth.sign_in_with_oauth() - Google and LINE sign-in (redirect URL flow)
- auth.get_user() - Get current user from JWT token
- auth.sign_out() - Logout users
- auth.on_auth_state_change() - Session stream used by the session runtime

Registration creates the auth user, then the profiles row, then for a
child the members row. OAuth users have no profile on first sign-in and
finish in the role-selection step (complete_profile).
"""
