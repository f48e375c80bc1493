"""Allow ``python -m dnsscale``."""

from .cli import main

if __name__ == "__main__":
    main()
