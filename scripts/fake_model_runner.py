#!/usr/bin/env python3
"""
Fake model runner for local development and testing.

Serves the two endpoints vendor-intake uses:
- POST /engines/v1/chat/completions (OpenAI-style chat completion)
- GET /health

The reply shape is picked with --mode:
- json: the requested JSON evaluation
- text: free text containing "Score: N"
- empty: a completion with empty content
- error: HTTP 500

Run with: python scripts/fake_model_runner.py --port 12434
Then set: MODEL_RUNNER_URL="http://127.0.0.1:12434"
"""

import argparse
import json
import re
import secrets
import time
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import urlparse

MODES = ("json", "text", "empty", "error")

PRODUCT_LINE = re.compile(r"^- Product Name: (.*)$", re.MULTILINE)
THRESHOLD_LINE = re.compile(r"Minimum passing score: (\d+)/100")


class FakeModelRunnerHandler(BaseHTTPRequestHandler):
    """HTTP handler implementing a fake chat completion API."""

    mode = "json"
    score = 85

    def log_message(self, format: str, *args) -> None:  # noqa: A002
        print(f"[FakeModelRunner] {args[0]}")

    def send_json(self, data: dict, status: int = 200) -> None:
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.end_headers()
        self.wfile.write(json.dumps(data).encode())

    def send_error_json(self, status: int, message: str) -> None:
        self.send_json({"error": {"message": message, "type": "server_error"}}, status=status)

    def do_POST(self) -> None:
        path = urlparse(self.path).path

        content_length = int(self.headers.get("Content-Length", 0))
        body = self.rfile.read(content_length).decode() if content_length > 0 else ""

        if path in ("/engines/v1/chat/completions", "/engines/llama.cpp/v1/chat/completions"):
            self.handle_completion(body)
        else:
            self.send_error_json(404, f"Unknown endpoint: {path}")

    def do_GET(self) -> None:
        path = urlparse(self.path).path
        if path == "/health":
            self.send_json({"status": "ok", "mode": self.mode})
        else:
            self.send_error_json(404, f"Unknown endpoint: {path}")

    def handle_completion(self, body: str) -> None:
        try:
            request = json.loads(body)
            messages = request["messages"]
        except (ValueError, KeyError):
            self.send_error_json(400, "Invalid request body")
            return

        if self.mode == "error":
            self.send_error_json(500, "model crashed")
            return

        system = next((m["content"] for m in messages if m.get("role") == "system"), "")
        prompt = next((m["content"] for m in messages if m.get("role") == "user"), "")

        if "catalog assistant" in system:
            content = "Here is what I found in our catalog. Can I help with anything else?"
        elif self.mode == "empty":
            content = ""
        elif self.mode == "text":
            content = f"This looks like a solid product. Score: {self.score}. Worth stocking."
        else:
            content = json.dumps(self.evaluation(prompt))

        self.send_json(
            {
                "id": f"chatcmpl-{secrets.token_hex(8)}",
                "object": "chat.completion",
                "created": int(time.time()),
                "model": request.get("model", "fake"),
                "choices": [
                    {
                        "index": 0,
                        "message": {"role": "assistant", "content": content},
                        "finish_reason": "stop",
                    }
                ],
            }
        )

    def evaluation(self, prompt: str) -> dict:
        product = PRODUCT_LINE.search(prompt)
        threshold = THRESHOLD_LINE.search(prompt)
        passing = int(threshold.group(1)) if threshold else 70
        name = product.group(1) if product else "the product"
        return {
            "score": self.score,
            "decision": "APPROVED" if self.score >= passing else "REJECTED",
            "reasoning": f"{name} has a clear description and a reasonable price.",
            "category_match": "Fits the stated category",
            "market_potential": "High" if self.score >= 85 else "Medium",
        }


def main() -> None:
    parser = argparse.ArgumentParser(description="Run fake model runner")
    parser.add_argument(
        "--port",
        type=int,
        default=12434,
        help="Port to listen on (default: 12434)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--mode",
        choices=MODES,
        default="json",
        help="Reply shape (default: json)",
    )
    parser.add_argument(
        "--score",
        type=int,
        default=85,
        help="Score returned in json and text modes (default: 85)",
    )
    args = parser.parse_args()

    FakeModelRunnerHandler.mode = args.mode
    FakeModelRunnerHandler.score = args.score

    server = HTTPServer((args.host, args.port), FakeModelRunnerHandler)
    print(f"Fake model runner at http://{args.host}:{args.port} (mode={args.mode})")
    print(f"Completions: http://{args.host}:{args.port}/engines/v1/chat/completions")
    print()

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\nShutting down...")
        server.shutdown()


if __name__ == "__main__":
    main()
