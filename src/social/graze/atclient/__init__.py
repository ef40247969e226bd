"""
AT Protocol client stack

Resolves identities, runs the OAuth authorization-code flow with DPoP-bound
tokens and PKCE, and makes authenticated XRPC calls against a user's PDS.

Key Components:
- model: Identifier types, TIDs, repository shapes and OAuth documents
- resolve: Handle and DID resolution
- atproto: Sessions, XRPC transport, repository client and OAuth flow
- app: Settings, logging and the command line interface
- errors: Exception hierarchy shared by all of the above
"""
