"""
Profile Tree

Content-addressed, hash-linked identity profile trees:
- Labeled nodes persisted on IPFS (node API or Pinata)
- SHA3-256 hash propagation from leaves to the root
- Optional ECIES (secp256k1) encryption of leaf payloads

Version: 1.0.0
"""

__version__ = "1.0.0"
