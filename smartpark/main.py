# File: smartpark/main.py
"""
Main application entry point for SmartPark
"""

import argparse
import logging
import sys
from typing import List, Optional

from .application.parking_service import ParkingService, ParkingServiceFactory
from .infrastructure.config import Settings, setup_logging
from .presentation.cli import ParkingMenu


class ParkingApplication:
    """Main application controller that sets up all components"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings.from_env()
        self.logger = setup_logging(self.settings)
        self.logger.info("Starting SmartPark...")

        try:
            self.service: ParkingService = ParkingServiceFactory.create_service(self.settings)
        except Exception as e:
            self.logger.error(f"Failed to initialize components: {e}")
            raise

        self.menu = ParkingMenu(self.service)
        self.logger.info(
            f"Parking lot ready with {self.service.engine.registry.count} slots "
            f"({self.settings.storage_backend} storage)"
        )

    def run(self) -> None:
        self.menu.run()
        self.logger.info("SmartPark stopped")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="SmartPark parking reservation and billing")
    parser.add_argument("--env-file", help="Path to a .env file with SMARTPARK_* settings")
    parser.add_argument("--bookings-file", help="Flat file used by save/load")
    parser.add_argument("--storage", choices=["file", "sql"], help="Booking storage backend")
    parser.add_argument("--database-url", help="SQLAlchemy URL for the sql backend")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, ...)")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    overrides = {
        key: value for key, value in {
            "bookings_file": args.bookings_file,
            "storage_backend": args.storage,
            "database_url": args.database_url,
            "log_level": args.log_level,
        }.items() if value is not None
    }

    try:
        app = ParkingApplication(Settings.from_env(args.env_file, **overrides))
        app.run()
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        logging.error(f"Fatal error in main: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
