#!/usr/bin/env python3
"""
KOT Printer - Flask service printing kitchen order tickets and bills
on thermal receipt printers (CUPS queues or a directly attached ESC/POS printer)
"""

import os

from kot_printer import create_app

app = create_app()


if __name__ == "__main__":
    host = os.environ.get("KOTPRINTER_HOST", "127.0.0.1")
    port = int(os.environ.get("KOTPRINTER_PORT", 5000))
    app.logger.info(f"Starting KOT Printer on http://{host}:{port}")
    app.logger.info("Press Ctrl+C to stop the server")
    app.run(host=host, port=port, debug=False)
