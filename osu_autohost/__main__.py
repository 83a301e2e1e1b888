import logging
import sys

from .bot import main

if __name__ == "__main__":
    try:
        sys.exit(main())
    finally:
        logging.shutdown()
