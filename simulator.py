"""Interactive CLI simulator — walk the OTP login flow against a local server."""

import asyncio

import httpx
import uvicorn

from ephemeral_idp.main import app

BASE_URL = "http://127.0.0.1:8080"

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
BOLD = "\033[1m"
RESET = "\033[0m"


async def main() -> None:
    print(f"\n{BOLD}{'=' * 52}")
    print("  🔑  Ephemeral IdP — OTP Login Simulator")
    print(f"{'=' * 52}{RESET}\n")

    # ── Start the service in the background ──────────────
    config = uvicorn.Config(app, host="127.0.0.1", port=8080, log_level="warning")
    server = uvicorn.Server(config)
    server_task = asyncio.create_task(server.serve())

    # Give the server a moment to start
    await asyncio.sleep(0.5)

    print(f"{DIM}OTP codes are printed in the server logs{RESET}")
    print(f"{DIM}Type 'resend' for a new code, 'quit' to exit{RESET}\n")

    email = input(f"{YELLOW}Email to sign in as: {RESET}").strip() or "alice@example.com"

    async with httpx.AsyncClient(base_url=BASE_URL) as client:
        resp = await client.post("/send-otp", json={"email": email})
        print(f"{GREEN}{BOLD}Server:{RESET} {resp.json()}\n")

        while True:
            try:
                user_input = input(f"{BLUE}{BOLD}OTP:{RESET} ").strip()
            except (KeyboardInterrupt, EOFError):
                print(f"\n{DIM}Goodbye!{RESET}")
                break

            if not user_input:
                continue

            if user_input.lower() == "quit":
                print(f"{DIM}Goodbye!{RESET}")
                break

            if user_input.lower() == "resend":
                resp = await client.post("/send-otp", json={"email": email})
                print(f"{GREEN}{BOLD}Server:{RESET} {resp.json()}\n")
                continue

            resp = await client.post("/verify-otp", json={"email": email, "otp": user_input})
            if resp.status_code == 200:
                print(f"{GREEN}{BOLD}Token:{RESET} {resp.json()['token']}\n")
                break
            print(f"{RED}{BOLD}Rejected ({resp.status_code}):{RESET} {resp.json()['detail']}\n")

    # Shut down the background server
    server.should_exit = True
    await server_task


if __name__ == "__main__":
    asyncio.run(main())
