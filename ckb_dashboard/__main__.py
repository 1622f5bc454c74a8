if __name__ == "__main__":
    try:
        from ckb_dashboard.app import run
        run()
    except ModuleNotFoundError as e:
        if "textual" in str(e) or "requests" in str(e):
            import sys
            print("Missing dependency. Install from project root: pip install -e .", file=sys.stderr)
            sys.exit(1)
        raise
