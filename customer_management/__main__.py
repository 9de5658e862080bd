"""Run customer-management with uvicorn: `python -m customer_management`."""

import uvicorn

from .config import HOST, PORT


def main() -> None:
    uvicorn.run("customer_management.main:app", host=HOST, port=PORT)


if __name__ == "__main__":
    main()
