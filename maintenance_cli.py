#!/usr/bin/env python3
"""
Database maintenance outside the web server.

Usage:
    python maintenance_cli.py migrate    Create tables and indexes, normalize data, check integrity
    python maintenance_cli.py rollback   Drop the additional indexes
    python maintenance_cli.py backup     pg_dump to database/backups/backup_<date>.sql
    python maintenance_cli.py check      Report broken references and incomplete records
"""

import json
import sys
from dotenv import load_dotenv

# Load environment variables first
load_dotenv()

from medpractice import create_app
from medpractice.reporting.maintenance import MAINTENANCE_ACTIONS, run_action


def main(argv):
    action = argv[1] if len(argv) > 1 else 'migrate'
    if action not in MAINTENANCE_ACTIONS:
        print(__doc__)
        return 1

    app = create_app()
    with app.app_context():
        try:
            result = run_action(action)
        except Exception as e:
            app.logger.error(f'{action} failed: {e}')
            print(f"{action} failed: {str(e)}")
            return 1

    print(f"{action} completed successfully")
    if result is not None:
        print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == '__main__':
    sys.exit(main(sys.argv))
