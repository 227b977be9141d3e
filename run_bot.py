import sys

from proxy_bot.app import main


if __name__ == "__main__":
    try:
        main()
    except ValueError as exc:
        text = str(exc)
        if text.startswith("DISCORD_") or text.startswith("PROXY_"):
            print(f"Proxy bot config error: {text}", file=sys.stderr)
            print("Fill DISCORD_TOKEN (and any PROXY_* overrides) in .env.", file=sys.stderr)
            raise SystemExit(2)
        raise
