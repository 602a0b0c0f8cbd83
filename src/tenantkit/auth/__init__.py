"""Authentication and authorization.

Learn: Users sign up / sign in with email + password and receive a JWT
access token (short-lived, stateless) and a JWT refresh token (longer-lived,
also persisted so it can be revoked). Routes declare an AccessPolicy that
decides whether a bearer token is required and which roles may call them.
"""
