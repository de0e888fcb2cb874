from __future__ import annotations

import argparse

import orjson

from .auth import SessionManager, api_host


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Store the bearer session used to edit job postings")
    parser.add_argument("--token", help="Access token issued by the job board")
    parser.add_argument("--expires-in", type=int, default=None, help="Token lifetime in seconds")
    parser.add_argument("--logout", action="store_true", help="Forget the stored session")
    args = parser.parse_args(argv)

    sess = SessionManager()
    h = api_host()
    if args.logout:
        sess.clear_session()
        print(orjson.dumps({"host": h, "logged_out": True}).decode())
        return 0
    if not args.token:
        parser.error("--token is required unless --logout is given")
    p = sess.save_session(args.token, expires_in=args.expires_in)
    print(orjson.dumps({"host": h, "saved": True, "path": str(p)}).decode())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
