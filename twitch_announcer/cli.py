import asyncio
import argparse
import logging
import sys

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

async def _oneshot():
    from twitch_announcer.twitch.api_client import TwitchClient
    from twitch_announcer.twitch.models import FetchFailure
    from twitch_announcer.config.settings import settings

    if not (settings.twitch_client_id and settings.twitch_client_secret and settings.twitch_username):
        print("Twitch credentials are not configured")
        return 1
    client = TwitchClient(settings.twitch_client_id, settings.twitch_client_secret, settings.twitch_username)
    try:
        snap = await client.get_live_snapshot()
    finally:
        await client.aclose()
    if isinstance(snap, FetchFailure):
        print(f"Twitch check failed: {snap.reason}")
        return 1
    if snap.is_live:
        print(f"@{settings.twitch_username} is LIVE: {snap.title} [{snap.category or '-'}] viewers={snap.viewer_count} since {snap.started_at}")
    else:
        print(f"@{settings.twitch_username} is offline")
    return 0


async def _api(method: str, path: str, payload=None):
    import httpx
    from twitch_announcer.config.settings import settings
    base = f"http://127.0.0.1:{settings.api_port}"
    async with httpx.AsyncClient(timeout=30) as client:
        try:
            resp = await client.request(method, f"{base}{path}", json=payload)
        except httpx.HTTPError as e:
            print(f"Announcer API not reachable at {base}: {e}")
            return None
    data = resp.json()
    if resp.status_code >= 400:
        print(f"Error: {data.get('detail', resp.status_code)}")
        return None
    return data


async def _status():
    data = await _api("GET", "/stream/status")
    if data is None:
        return 1
    stream, ann = data["stream"], data["announcement"]
    print(f"Stream: {'LIVE' if stream['is_live'] else 'OFFLINE'}" + (f" - {stream['stream_title']}" if stream['stream_title'] else ""))
    print(f"Last check: {stream['last_checked_at'] or 'never'}")
    print(f"Announcement: {ann['state']} message={ann['message_id']} elapsed={ann['elapsed_minutes']}/{ann['threshold_minutes']} min")
    return 0


async def _action(method: str, path: str, payload=None):
    data = await _api(method, path, payload)
    if data is None:
        return 1
    print(data.get("detail") or data)
    return 0


def main():
    parser = argparse.ArgumentParser(description="Twitch stream announcements for a Telegram channel")
    parser.add_argument("command", nargs="?", default="run",
                        choices=["run", "check", "status", "force", "reset", "announce", "update-stats", "test"],
                        help="run the service, or talk to a running one")
    parser.add_argument("arg", nargs="*", help="title for the announce command")
    args = parser.parse_args()

    if args.command == "check":
        sys.exit(asyncio.run(_oneshot()))
    elif args.command == "status":
        sys.exit(asyncio.run(_status()))
    elif args.command == "force":
        data = asyncio.run(_api("POST", "/stream/check"))
        if data is None:
            sys.exit(1)
        snap = data["snapshot"]
        print(f"Twitch: {'LIVE - ' + (snap['title'] or '') if snap['is_live'] else 'offline'}")
        print(f"Saved state: {'ONLINE' if data['stream']['is_live'] else 'OFFLINE'}, checked {data['stream']['last_checked_at']}")
    elif args.command == "reset":
        sys.exit(asyncio.run(_action("POST", "/stream/reset")))
    elif args.command == "announce":
        title = " ".join(args.arg).strip() or None
        sys.exit(asyncio.run(_action("POST", "/stream/announce", {"title": title})))
    elif args.command == "update-stats":
        sys.exit(asyncio.run(_action("POST", "/stream/update-stats")))
    elif args.command == "test":
        sys.exit(asyncio.run(_action("POST", "/stream/test")))
    else:
        from twitch_announcer.config.settings import settings
        from twitch_announcer.orchestration.service import main as service_main
        missing = settings.missing_required()
        if missing:
            for name in missing:
                print(f"{name} is not set (check your .env)")
            sys.exit(1)
        # Start the long-running service (poller + API server)
        asyncio.run(service_main())
if __name__ == "__main__":
    main()
