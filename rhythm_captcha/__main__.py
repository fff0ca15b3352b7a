from __future__ import annotations

import sys
from pathlib import Path


def _ensure_repo_root_on_path() -> None:
    """Put the repository root (parent of this package) on ``sys.path``.

    Lets ``python rhythm_captcha/__main__.py`` resolve the package the same
    way ``python -m rhythm_captcha`` does.
    """
    pkg_dir = Path(__file__).resolve().parent
    repo_root_str = str(pkg_dir.parent)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


try:
    from .app import run  # type: ignore[attr-defined]
except ImportError:
    _ensure_repo_root_on_path()
    from rhythm_captcha.app import run  # type: ignore[attr-defined]


def main() -> int:
    """Entry point for running the rhythm captcha from the command line."""
    return run()


if __name__ == "__main__":
    raise SystemExit(main())
