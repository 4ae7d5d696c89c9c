"""Flask server that stays alive"""

import logging
import sys

if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8")

from app import create_app


def main() -> None:
    app = create_app()
    config = app.config["WXHUB_CONFIG"]

    print(f"Server starting on http://{config.http_host}:{config.http_port}")
    print("Press Ctrl+C to stop\n")

    try:
        # Threaded so slow sinks never stall a station's HTTP post
        app.run(host=config.http_host, port=config.http_port, debug=False, use_reloader=False, threaded=True)
    except KeyboardInterrupt:
        print("\nServer stopped by user")
    except Exception as e:
        logging.getLogger(__name__).error("Server error: %s", e, exc_info=True)
    finally:
        app.extensions["wxhub_shutdown"]("server exit")


if __name__ == "__main__":
    main()
