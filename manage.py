#!/usr/bin/env python
"""Command-line entry point for the clinic backend (migrate, seed_data, generate_schedule, ...)."""
import os
import sys


def main() -> None:
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'clinic.settings')
    try:
        from django.core.management import execute_from_command_line
    except ImportError as exc:
        raise ImportError("Django is not installed; run `pip install -e .[test]` first") from exc
    execute_from_command_line(sys.argv)


if __name__ == '__main__':
    main()
