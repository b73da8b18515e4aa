import asyncio
import json

import websockets


async def smoke():
    # Run the backend first: cd backend && python -m app.main
    async with websockets.connect(
        "ws://localhost:1999/party/main-lobby",
        additional_headers={"Origin": "http://localhost:1999"},
    ) as ws:
        # Visitor count arrives as soon as the socket opens
        print(f"Connected: {await ws.recv()}")

        await ws.send(json.dumps({"type": "join", "username": "smoke-test"}))
        # history, join announcement, user list, visitor count
        for _ in range(4):
            print(f"Join: {await ws.recv()}")

        await ws.send(json.dumps({"type": "chat", "text": "Hello from Python!"}))
        print(f"Received: {await ws.recv()}")


asyncio.run(smoke())
