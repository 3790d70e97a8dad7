from __future__ import annotations

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
for path in (REPO_ROOT, REPO_ROOT / "src"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from smartsteps import create_app
from smartsteps.database.bootstrap import ensure_database_exists, init_db, seed_permissions


def main() -> None:
    app = create_app()
    uri = app.config["SQLALCHEMY_DATABASE_URI"]
    ensure_database_exists(uri)
    with app.app_context():
        tables = init_db()
        added = seed_permissions()
    print(f"OK: schema ready -> {app.config.get('DB_HOST')}/{app.config.get('DB_NAME')} (tables={len(tables)}, new permissions={added})")


if __name__ == "__main__":
    main()
