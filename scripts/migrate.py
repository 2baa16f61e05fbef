#!/usr/bin/env python
"""
Wrapper de Alembic para las migraciones del esquema de sync.

Uso:
    python scripts/migrate.py upgrade          # Aplicar migraciones pendientes
    python scripts/migrate.py downgrade        # Revertir ultima migracion
    python scripts/migrate.py revision "desc"  # Crear nueva migracion (autogenerate)
    python scripts/migrate.py current          # Ver version actual
"""
import subprocess
import sys
from pathlib import Path


ROOT_DIR = Path(__file__).parent.parent

DEFAULT_TARGETS = {"upgrade": "head", "downgrade": "-1"}


def run_alembic(args: list) -> int:
    cmd = ["alembic"] + args
    print(f"Ejecutando: {' '.join(cmd)}")
    return subprocess.run(cmd, cwd=ROOT_DIR).returncode


def main() -> int:
    if len(sys.argv) < 2 or sys.argv[1] in ("help", "-h", "--help"):
        print(__doc__)
        return 0 if len(sys.argv) >= 2 else 1

    command = sys.argv[1].lower()

    if command in DEFAULT_TARGETS:
        target = sys.argv[2] if len(sys.argv) > 2 else DEFAULT_TARGETS[command]
        return run_alembic([command, target])

    if command == "revision":
        if len(sys.argv) < 3:
            print("Error: Falta mensaje para la revision")
            return 1
        return run_alembic(["revision", "-m", sys.argv[2], "--autogenerate"])

    if command == "current":
        return run_alembic(["current"])

    print(f"Comando desconocido: {command}")
    print(__doc__)
    return 1


if __name__ == "__main__":
    sys.exit(main())
