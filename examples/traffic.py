"""Drive the demo API with a little traffic and print what comes back.

Run the server first:
    python -m reqlens

Then:
    python examples/traffic.py [base_url] [rounds]

Each round hits the four API endpoints once, so every sink and every
request metric gets something to show. The last /metrics scrape is printed
at the end.
"""

import asyncio
import sys

import httpx

ENDPOINTS = (
    "/api/users",
    "/api/orders/generate",
    "/api/users/filter?age=30",
    "/api/compute",
)


async def drive(base_url: str, rounds: int) -> None:
    async with httpx.AsyncClient(base_url=base_url, timeout=30.0) as client:
        for round_number in range(1, rounds + 1):
            for path in ENDPOINTS:
                response = await client.get(path)
                body = response.text
                if len(body) > 120:
                    body = body[:117] + "..."
                print(f"[{round_number}] GET {path} -> {response.status_code} {body}")

        metrics = await client.get("/metrics")
        print()
        print(metrics.text)


def main() -> None:
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:3000"
    rounds = int(sys.argv[2]) if len(sys.argv) > 2 else 3
    asyncio.run(drive(base_url, rounds))


if __name__ == "__main__":
    main()
