"""Run customer-facing with uvicorn: `python -m customer_facing`."""

import uvicorn

from .config import HOST, PORT


def main() -> None:
    uvicorn.run("customer_facing.main:app", host=HOST, port=PORT)


if __name__ == "__main__":
    main()
