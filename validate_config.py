#!/usr/bin/env python3
"""
Configuration validator for the Jira bridge.

Checks that the required configuration is present and, with --ping, that
Jira answers with these credentials.
"""

import sys
import os
from pathlib import Path

# Add jira_bridge to path
sys.path.insert(0, str(Path(__file__).parent))


def validate_env_vars():
    """Validate environment variables."""
    print("\n" + "="*60)
    print("VALIDATING ENVIRONMENT VARIABLES")
    print("="*60 + "\n")

    env_file = Path(__file__).parent / ".env"
    if env_file.exists():
        from dotenv import load_dotenv
        load_dotenv(env_file)
        print(f"✓ Loaded .env file from {env_file}")
    else:
        print(f"⚠ No .env file found at {env_file}")

    required_vars = [
        ("JIRA_BASE_URL", "Jira instance URL"),
        ("JIRA_USERNAME", "Integration user name"),
        ("JIRA_PASSWORD", "Integration user password or API token"),
    ]
    optional_vars = [
        ("JIRA_WEBHOOK_SECRET", "Webhook shared secret"),
        ("APP_EVENTS_URL", "Application endpoint receiving events"),
        ("LISTEN_HOST", "Server host (default 127.0.0.1)"),
        ("LISTEN_PORT", "Server port (default 8088)"),
    ]

    missing = []
    for var_name, description in required_vars + optional_vars:
        value = os.getenv(var_name)
        if value:
            if "PASSWORD" in var_name or "SECRET" in var_name:
                display_value = value[:3] + "..." if len(value) > 3 else "***"
            else:
                display_value = value[:50]
            print(f"✅ {var_name:<25} = {display_value}")
        elif (var_name, description) in required_vars:
            print(f"❌ {var_name:<25} - MISSING ({description})")
            missing.append(var_name)
        else:
            print(f"⚠ {var_name:<25} - not set ({description})")

    print()
    print(f"Missing required: {len(missing)}")
    return len(missing) == 0


def validate_jira_connection():
    """Call serverInfo with the configured credentials."""
    print("\n" + "="*60)
    print("VALIDATING JIRA CONNECTION")
    print("="*60 + "\n")

    from jira_bridge.config import Settings
    from jira_bridge.errors import RemoteUnavailable
    from jira_bridge.jira import JiraClient

    config = Settings()
    client = JiraClient(
        config.jira_base_url,
        config.jira_username,
        config.jira_password,
        timeout_s=config.jira_timeout_seconds,
        max_attempts=1,
    )
    try:
        info = client.server_info(do_health_check=True) or {}
    except RemoteUnavailable as e:
        print(f"❌ Jira not reachable: {e}")
        return False

    print(f"✅ Connected to {info.get('serverTitle', '?')} (version {info.get('version', '?')})")
    for check in info.get("healthChecks") or []:
        status = "✅" if check.get("passed") else "⚠"
        print(f"  {status} {check.get('name')}")
    return True


def main(argv=None):
    """Run all validation checks."""
    argv = sys.argv[1:] if argv is None else argv

    print("\n" + "="*70)
    print("JIRA BRIDGE CONFIGURATION VALIDATOR")
    print("="*70)

    checks = [("Environment Variables", validate_env_vars)]
    if "--ping" in argv:
        checks.append(("Jira Connection", validate_jira_connection))

    results = []
    for check_name, check_func in checks:
        passed = check_func()
        results.append((check_name, passed))
        if not passed:
            break

    print("\n" + "="*70)
    print("VALIDATION SUMMARY")
    print("="*70 + "\n")

    for check_name, passed in results:
        status = "✅ PASS" if passed else "❌ FAIL"
        print(f"{status}  {check_name}")

    print()
    if all(passed for _, passed in results):
        print("✅ ALL VALIDATION CHECKS PASSED!")
        return 0
    print("❌ Please fix the issues above before starting the bridge.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
