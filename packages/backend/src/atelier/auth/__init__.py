"""Authentication — JWT access tokens issued by the main CRM backend.

Learn: Users log in through the CRM's auth endpoints; this service only
verifies the tokens they carry. The payload holds the user id (sub),
email and role.
"""
