"""Command-line client for the agent gateway."""

from __future__ import annotations

import argparse
import json

import httpx


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Send a message to the shop agent gateway")
    parser.add_argument("message", help="User message")
    parser.add_argument("--agent-url", default="http://localhost:7002", help="Gateway base URL")
    parser.add_argument("--user-id", default=None, help="Signed-in consumer id")
    parser.add_argument("--seller-id", default=None, help="Signed-in seller id")
    parser.add_argument("--user-type", choices=("consumer", "seller"), default=None, help="Caller type")
    parser.add_argument("--age-verified", action="store_true", help="Caller has passed age verification")
    parser.add_argument("--timeout", type=float, default=60.0, help="Request timeout seconds")
    parser.add_argument("--verbose", action="store_true", help="Print the full response and metadata")
    return parser


def build_payload(args: argparse.Namespace) -> dict:
    user_context: dict = {
        "isLoggedIn": bool(args.user_id or args.seller_id),
        "ageVerified": args.age_verified,
    }
    if args.user_id:
        user_context["userId"] = args.user_id
    if args.seller_id:
        user_context["sellerId"] = args.seller_id
    if args.user_type:
        user_context["userType"] = args.user_type
    return {"message": args.message, "userContext": user_context}


def render(response: dict) -> str:
    kind = response.get("type")
    if kind == "ANSWER":
        return response.get("content", "")
    if kind == "NEED_MORE_INFO":
        return "\n".join(f"? {q}" for q in response.get("questions", []))
    if kind == "TOOL_CALL":
        return f"[confirm] {response.get('humanSummary')} ({response.get('tool')})"
    if kind == "BRIEFING_WITH_PRODUCTS":
        briefing = response.get("briefing", {})
        lines = [briefing.get("title", ""), briefing.get("summary", "")]
        lines.extend(f"- {p.get('title')} {p.get('price')} {p.get('currency')}" for p in response.get("products", []))
        return "\n".join(lines)
    return json.dumps(response, ensure_ascii=False)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    url = f"{args.agent_url}/v1/agent"

    # Avoid inheriting system proxy settings that can break localhost calls.
    try:
        with httpx.Client(timeout=args.timeout, trust_env=False) as client:
            resp = client.post(url, json=build_payload(args))
    except httpx.ReadTimeout:
        print("Request timed out. The server may still be processing the request.")
        print("Try again with a longer timeout, e.g. --timeout 120")
        return 1
    if resp.status_code >= 400:
        print(f"Request failed: {resp.status_code}")
        print(resp.text)
        return 1

    data = resp.json()
    print(render(data.get("response", {})))

    if args.verbose:
        print("\n--- response ---")
        print(json.dumps(data.get("response", {}), ensure_ascii=False, indent=2))
        print("\n--- metadata ---")
        print(json.dumps(data.get("metadata", {}), ensure_ascii=False, indent=2))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
