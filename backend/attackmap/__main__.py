# backend/attackmap/__main__.py
import argparse

import uvicorn


def main() -> None:
    parser = argparse.ArgumentParser(prog="attackmap", description="Live attack map backend")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--mock-feed", action="store_true", help="serve il feed finto invece della dashboard")
    args = parser.parse_args()

    target = "attackmap.mockfeed:app" if args.mock_feed else "attackmap.main:app"
    uvicorn.run(target, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
