from pathlib import Path
import logging
import os
import sys

from dotenv import load_dotenv

# Ensure the src directory is on sys.path when running as a script
_SRC_DIR = Path(__file__).resolve().parents[1]
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from raidprog.presentation.cli import main as cli_main

load_dotenv()


def main() -> int:
    logging.basicConfig(
        level=os.getenv("RAIDPROG_LOG_LEVEL", "WARNING").strip().upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return cli_main()
    except KeyboardInterrupt:
        print("\nLookup cancelled.")
        return 130
    except ValueError as exc:
        print(f"Invalid input: {exc}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
