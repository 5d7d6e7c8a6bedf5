"""
Deploy helper — verifies the agent imports, env is set and the database and
chain RPCs are reachable before deploying.

Usage:
    python -m scripts.deploy --check
    python -m scripts.deploy --init-db
"""
import sys
import asyncio


def check_imports():
    """Verify the agent and chain plugin modules import cleanly."""
    print("Checking imports...")
    errors = []

    modules = [
        ("S-DCA API", "agents.sdca.main"),
        ("Injective", "shared.chains.injective"),
        ("Aptos", "shared.chains.aptos"),
        ("Sonic", "shared.chains.sonic"),
    ]

    for name, module_path in modules:
        try:
            __import__(module_path)
            print(f"  {name:20s} OK")
        except Exception as e:
            print(f"  {name:20s} FAILED: {e}")
            errors.append((name, str(e)))

    return errors


async def check_database():
    """Verify database connectivity."""
    print("\nChecking database...")
    try:
        from sqlalchemy import select, func
        from shared.database import async_session
        from agents.sdca.models.db import InvestmentPlan

        async with async_session() as db:
            result = await db.execute(select(func.count()).select_from(InvestmentPlan))
            print(f"  Database: CONNECTED ({result.scalar()} plans)")
            return True
    except Exception as e:
        print(f"  Database: FAILED ({e})")
        return False


async def check_chains():
    """Verify each chain RPC answers."""
    print("\nChecking chain RPCs...")
    import httpx
    from shared.config import settings

    probes = {
        "Injective": (settings.INJECTIVE_RPC_URL, {"jsonrpc": "2.0", "id": 1, "method": "eth_blockNumber", "params": []}),
        "Sonic": (settings.SONIC_RPC_URL, {"jsonrpc": "2.0", "id": 1, "method": "getSlot", "params": []}),
    }
    all_ok = True
    async with httpx.AsyncClient(timeout=10) as client:
        for name, (url, payload) in probes.items():
            try:
                resp = await client.post(url, json=payload)
                print(f"  {name:10s} CONNECTED ({resp.json().get('result')})")
            except Exception as e:
                print(f"  {name:10s} FAILED ({e})")
                all_ok = False
        try:
            resp = await client.get(settings.APTOS_NODE_URL)
            print(f"  {'Aptos':10s} CONNECTED (ledger {resp.json().get('ledger_version')})")
        except Exception as e:
            print(f"  {'Aptos':10s} FAILED ({e})")
            all_ok = False
    return all_ok


def check_env():
    """Check critical environment variables."""
    print("\nChecking environment...")
    from shared.config import settings

    checks = {
        "DATABASE_URL": bool(settings.DATABASE_URL),
        "PRIVATE_KEY_INJECTIVE": bool(settings.PRIVATE_KEY_INJECTIVE),
        "PRIVATE_KEY_APTOS": bool(settings.PRIVATE_KEY_APTOS),
        "PRIVATE_KEY_SONIC": bool(settings.PRIVATE_KEY_SONIC),
        "API_SECRET_KEY": settings.API_SECRET_KEY != "dev-secret-key",
        "ADMIN_API_KEY": settings.ADMIN_API_KEY != "dev-admin-key",
    }

    all_ok = True
    for name, ok in checks.items():
        status = "SET" if ok else "MISSING"
        print(f"  {name:25s} {status}")
        if not ok:
            all_ok = False

    return all_ok


async def main():
    print("=" * 50)
    print("S-DCA Deployment Check")
    print("=" * 50)

    errors = check_imports()
    env_ok = check_env()
    db_ok = await check_database()
    chain_ok = await check_chains()

    print("\n" + "=" * 50)
    print("RESULTS:")
    print(f"  Imports:    {'PASS' if not errors else f'FAIL ({len(errors)} errors)'}")
    print(f"  Env vars:   {'PASS' if env_ok else 'FAIL'}")
    print(f"  Database:   {'PASS' if db_ok else 'FAIL'}")
    print(f"  Chains:     {'PASS' if chain_ok else 'FAIL'}")

    if errors or not env_ok:
        print("\nFix issues before deploying.")
        sys.exit(1)
    print("\nReady to deploy!")


if __name__ == "__main__":
    if "--init-db" in sys.argv:
        from scripts.init_db import init_database
        asyncio.run(init_database())
    else:
        asyncio.run(main())
