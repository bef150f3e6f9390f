"""
Profile Tree Configuration Module
Loads environment variables and provides configuration settings for the
content-addressed profile tree store.
"""

import os
from dataclasses import dataclass
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


@dataclass
class Config:
    """Application configuration settings."""
    
    # ============ API Settings ============
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))
    API_LOG_LEVEL: str = os.getenv("API_LOG_LEVEL", "info")
    
    # ============ Content Store ============
    # One of: ipfs, pinata, memory
    STORE_BACKEND: str = os.getenv("STORE_BACKEND", "ipfs")
    
    # IPFS node HTTP API (protocol://host:port)
    IPFS_API_URL: str = os.getenv("IPFS_API_URL", "http://127.0.0.1:5001")
    IPFS_TIMEOUT: float = float(os.getenv("IPFS_TIMEOUT", "60"))
    
    # ============ IPFS (Pinata) ============
    PINATA_API_KEY: str = os.getenv("PINATA_API_KEY", "")
    PINATA_SECRET_KEY: str = os.getenv("PINATA_SECRET_KEY", "")
    PINATA_JWT: str = os.getenv("PINATA_JWT", "")  # Alternative to API key pair
    
    # IPFS Gateway
    IPFS_GATEWAY: str = os.getenv("IPFS_GATEWAY", "https://gateway.pinata.cloud/ipfs")
    
    # ============ Leaf Encryption ============
    # secp256k1 keys as hex strings (0x prefix optional)
    LEAF_PUBLIC_KEY: str = os.getenv("LEAF_PUBLIC_KEY", "")
    LEAF_PRIVATE_KEY: str = os.getenv("LEAF_PRIVATE_KEY", "")
    
    def is_ipfs_configured(self) -> bool:
        """Check if an IPFS node API is configured."""
        return bool(self.IPFS_API_URL)
    
    def is_pinata_configured(self) -> bool:
        """Check if Pinata is properly configured."""
        return bool(
            self.PINATA_JWT or
            (self.PINATA_API_KEY and self.PINATA_SECRET_KEY)
        )
    
    def is_encryption_configured(self) -> bool:
        """Check if leaf encryption is configured."""
        return bool(self.LEAF_PUBLIC_KEY or self.LEAF_PRIVATE_KEY)


# Global config instance
config = Config()
