"""
Identity Resolution

This package resolves AT Protocol subjects (handles and DIDs) to the account's
DID, handle and PDS endpoint.

Key Components:
- handle.py: Subject parsing and handle to DID resolution
- did.py: DID document retrieval and PDS lookup
- __main__.py: CLI interface for resolution

Resolution Types:
1. Handle Resolution
   - HTTPS well-known endpoint on the handle's own domain (.well-known/atproto-did)
   - Fallback to the public API (com.atproto.identity.resolveHandle)

2. DID Resolution
   - did:plc method resolution via the PLC directory
   - did:web method resolution via the domain's did.json

Each lookup that fails raises ``ResolutionError`` naming the step that failed.
"""
