import argparse
import sys
import os

# Ensure the project root is on the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from quickrdp.core.backend import Backend
from quickrdp.core.config import AppPaths
from quickrdp.core.log import setup_logging
from quickrdp.ui.app import QuickRDPApp


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="quickrdp", description="Quick RDP launcher for domain servers")
    parser.add_argument(
        "--debug", "--debug-log", dest="debug", action="store_true",
        help="write a detailed QuickRDP_Debug.log to the data directory",
    )
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    paths = AppPaths.default()
    paths.ensure()
    logger = setup_logging(debug=args.debug, log_file=paths.log_file)
    logger.debug("Starting QuickRDP, data directory %s", paths.data_dir)

    backend = Backend(paths=paths)
    app = QuickRDPApp(backend)
    app.mainloop()


if __name__ == "__main__":
    main()
