"""
Data Models

This package defines the value types and documents exchanged by the client
stack. Identifier types validate on construction; documents are pydantic
models so they can be decoded from and dumped to JSON directly.

Key Models:
- identifiers.py: Did, Handle and AtUri value types
- tid.py: Timestamp identifiers (TIDs) and the process-wide TID generator
- repo.py: com.atproto.repo request/response shapes and blob references
- oauth.py: Discovery documents, token responses, pending authorizations,
  session credentials and the client metadata document

The models relate as follows:
- PendingAuthorization: transient state between the authorization redirect
  and the callback, consumed exactly once
- SessionCredential: durable tokens and DPoP key for one account, refreshed
  in place
- BlobRef: immutable pointer to an uploaded blob, embedded in records
"""
