from __future__ import annotations

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
for path in (REPO_ROOT, REPO_ROOT / "src"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from smartsteps import create_app
from smartsteps.database.bootstrap import ensure_admin_user, seed_permissions


def main() -> None:
    app = create_app()
    with app.app_context():
        seed_permissions()
        created = ensure_admin_user(app.config.get("ADMIN_EMAIL"), app.config.get("ADMIN_PASSWORD"))
    if created:
        print(f"OK: created admin {app.config.get('ADMIN_EMAIL')}")
    else:
        print("OK: permissions seeded (admin already present, or ADMIN_EMAIL/ADMIN_PASSWORD not set)")


if __name__ == "__main__":
    main()
