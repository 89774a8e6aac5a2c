#!/usr/bin/env python3
"""Database seeding script for TrendPulse.

This script connects to the database, creates all tables, and loads the
runtime tuning values from config/system_config.yaml into the config store.
"""

import asyncio
import sys
from pathlib import Path

import yaml

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from trendpulse.core.config import CONFIG_KEYS, load_pipeline_config
from trendpulse.core.db import AsyncSessionLocal, create_all
from trendpulse.core.repositories import set_config_value
from trendpulse.core.settings import get_settings

settings = get_settings()


def load_yaml_config(file_path: Path) -> dict:
    """Load YAML configuration file."""
    if not file_path.exists():
        print(f"Warning: {file_path} not found, skipping...")
        return {}

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f) or {}
            print(f"Loaded config from {file_path}")
            return config
    except yaml.YAMLError as e:
        print(f"Error loading {file_path}: {e}")
        return {}


async def seed_system_config(session) -> int:
    """
    Write every known key found in config/system_config.yaml.

    Returns count of keys written.
    """
    config = load_yaml_config(project_root / "config" / "system_config.yaml")
    values = config.get('system_config', {})
    if not values:
        print("No system_config section found")
        return 0

    written = 0
    for key, value in values.items():
        if key not in CONFIG_KEYS:
            print(f"  Skipping unknown key: {key}")
            continue
        try:
            await set_config_value(session, key, value)
            print(f"  {key} = {value!r}")
            written += 1
        except Exception as e:
            print(f"  Error writing {key}: {e}")

    return written


async def main():
    """Main seeding function."""
    print("Starting TrendPulse database seeding...")
    print(f"Project root: {project_root}")

    try:
        print("\nCreating database tables...")
        await create_all()
        print("Database tables ready")

        async with AsyncSessionLocal() as session:
            written = await seed_system_config(session)

            # Read back through the same path the passes use
            config = await load_pipeline_config(session)

        print("\n" + "=" * 60)
        print("DATABASE SEEDING COMPLETE")
        print("=" * 60)
        print(f"Config keys written: {written}")
        print(f"Threshold mode: {config.threshold.mode} (manual value {config.threshold.manual_value})")
        print(f"Similarity threshold: {config.clustering.similarity_threshold}")
        print(f"Database: {settings.db_url.split('@')[1] if '@' in settings.db_url else 'configured'}")
        print("=" * 60)

        return 0

    except Exception as e:
        print(f"Error during seeding: {e}")
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
