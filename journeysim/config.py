"""
Journeysim Configuration

Loads configuration from environment variables with sensible defaults.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


VALID_STORES = ("memory", "json", "postgres")


class Config:
    """Application configuration loaded from environment variables."""

    # Journey store backend: memory | json | postgres
    STORE: str = os.getenv("JOURNEYSIM_STORE", "memory")

    # Directory used by JsonJourneyStore
    DATA_DIR: Path = Path(os.getenv("JOURNEYSIM_DATA_DIR", "journeys"))

    # Database Configuration (PostgresJourneyStore only)
    DATABASE_URL: str = os.getenv("DATABASE_URL", "postgresql://localhost/journeysim")

    # Product assumed by the example runner when a step omits one
    DEFAULT_PRODUCT: str = os.getenv("DEFAULT_PRODUCT", "BMA")

    # Print session transitions (set_time, events, reminders)
    VERBOSE: bool = os.getenv("JOURNEYSIM_VERBOSE", "").lower() in ("1", "true", "yes")

    # Project Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent
    SCENARIOS_DIR: Path = PROJECT_ROOT / "examples" / "journeys"

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if values are unusable."""
        from .schemas import Product

        if cls.STORE not in VALID_STORES:
            raise ValueError(
                f"JOURNEYSIM_STORE must be one of {', '.join(VALID_STORES)}; got '{cls.STORE}'"
            )

        if cls.STORE == "postgres" and not cls.DATABASE_URL:
            raise ValueError("DATABASE_URL is required when using the 'postgres' store")

        try:
            Product(cls.DEFAULT_PRODUCT)
        except ValueError:
            raise ValueError(
                f"DEFAULT_PRODUCT '{cls.DEFAULT_PRODUCT}' is not a known product"
            ) from None

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "Journeysim Configuration:",
            f"  Store: {cls.STORE}",
            f"  Data Dir: {cls.DATA_DIR}",
            f"  Database: {cls.DATABASE_URL}",
            f"  Default Product: {cls.DEFAULT_PRODUCT}",
            f"  Verbose: {cls.VERBOSE}",
        ]
        return "\n".join(lines)
