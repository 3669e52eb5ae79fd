# create_db.py - Create database tables and seed export presets
import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent / "backend"
sys.path.insert(0, str(backend_dir))

from scene_engine.core.logging import setup_logging
from scene_engine.db.init_db import create_tables, seed_export_presets
from scene_engine.db.session import SessionLocal, engine

setup_logging()

print("Creating database tables...")
create_tables()

db = SessionLocal()
try:
    added = seed_export_presets(db)
finally:
    db.close()
print(f"Database ready ({added} export presets added)")

# List created tables
from sqlalchemy import inspect
inspector = inspect(engine)
tables = inspector.get_table_names()
print(f"\n{len(tables)} tables:")
for table in tables:
    print(f"   - {table}")
