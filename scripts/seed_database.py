#!/usr/bin/env python3
"""
Database seeding script for demo terminology

Loads the demo NAMASTE codes, ICD-11 TM2 / Biomedicine codes and their
curated concept mappings into the configured database. Existing codes and
mapping pairs are skipped, so the script can be re-run safely.

Usage:
    python scripts/seed_database.py
"""
import asyncio
import sys
from pathlib import Path

# Add parent directory to path to import terminology_service modules
sys.path.append(str(Path(__file__).parent.parent))

from terminology_service.database import SessionLocal, engine
from terminology_service.models import Base
from terminology_service.terminology.repository import SQLAlchemyCodeRepository
from terminology_service.terminology.seed import SEED_CODES, SEED_MAPPINGS

# Create all tables
Base.metadata.create_all(bind=engine)


async def seed_terminology():
    """Insert demo codes and mappings"""
    db = SessionLocal()
    try:
        repository = SQLAlchemyCodeRepository(db)

        inserted = await repository.bulk_insert_codes(SEED_CODES)
        print(f"✓ Codes: {inserted} added, {len(SEED_CODES) - inserted} skipped (exist)")

        before = (await repository.get_stats())["mapped_pairs"]
        for mapping in SEED_MAPPINGS:
            await repository.insert_mapping(mapping)
        stats = await repository.get_stats()
        print(f"✓ Mappings: {stats['mapped_pairs'] - before} added")
    finally:
        db.close()

    print(f"\n✅ Database seeding complete!")
    print(f"   NAMASTE terms: {stats['namaste_terms']}")
    print(f"   ICD-11 terms: {stats['icd11_terms']}")
    print(f"   Mapped pairs: {stats['mapped_pairs']}")

if __name__ == "__main__":
    print("📋 Seeding database with demo terminology...\n")
    try:
        asyncio.run(seed_terminology())
    except Exception as e:
        print(f"\n❌ Error seeding database: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
