"""auth/ -- Identity lifecycle package for MemberDesk.

Holds the identity store, OTP issuance/verification, the signup / login /
password reset flows, and account archival.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or media/.
api/ imports from auth/, not the other way around.
"""
