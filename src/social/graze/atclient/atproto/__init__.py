"""
AT Protocol Client

Authenticated access to a PDS on behalf of one account.

Key Components:
- jwt.py, pkce.py: DPoP proofs and PKCE pairs
- session.py: Per-request authorization (bearer or DPoP-bound)
- chain.py: Request middleware with single nonce-challenge retry
- xrpc.py, repo.py, agent.py: XRPC transport and typed repository calls
- pds.py: Authorization server discovery
- oauth.py, store.py: Authorization-code flow, token refresh and pending
  authorization storage
"""
