"""Verify that the setup is correct before running the watcher."""
import sys
import psycopg2
from dotenv import load_dotenv
from issue_label_watcher.infrastructure.settings import SettingsError, WatcherSettings

# Load environment variables from .env or env file
load_dotenv('.env') or load_dotenv('env')


def check_settings():
    """Check that the configuration parses and names something to watch."""
    print("Checking configuration...")

    try:
        settings = WatcherSettings.from_env()
    except SettingsError as e:
        print(f"❌ {e}")
        return None

    if not settings.repositories:
        print("❌ ILW_REPOS is empty, nothing to watch")
        return None

    print("✅ Configuration loaded")
    for repository in settings.repositories:
        labels = ", ".join(repository.labels) or "(no labels)"
        print(f"   {repository.full_name}: {labels}")
        if not repository.labels and not repository.watch_pinned:
            print(f"⚠️  {repository.full_name} has no labels and does not watch pinned issues")

    return settings


def check_github_token(settings):
    """Verify GitHub token format."""
    print("\nChecking GitHub token...")

    token = settings.github_token
    if token.startswith("ghp_") or token.startswith("github_pat_"):
        print("✅ GitHub token format looks valid")
        print(f"   Token prefix: {token[:10]}...")
    else:
        print("⚠️  Token format may be invalid (expected ghp_* or github_pat_*)")
    return True


def check_notifications(settings):
    """Report where notifications will go."""
    print("\nChecking notification settings...")

    if settings.smtp_enabled:
        print(f"✅ Email will be sent from {settings.smtp_from} to {settings.smtp_to} via {settings.smtp_server}")
    else:
        print("⚠️  SMTP_SERVER, SMTP_FROM or SMTP_TO not set, notifications will only be logged")
    return True


def check_state_storage(settings):
    """Check the configured state backend is reachable."""
    print("\nChecking state storage...")

    if settings.state_backend == "file":
        print(f"✅ State will be kept in {settings.state_path}")
        return True

    try:
        conn = psycopg2.connect(settings.postgres_connection_string)
    except psycopg2.Error as e:
        print(f"❌ Failed to connect to PostgreSQL: {e}")
        return False

    try:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = 'public' AND table_name = 'watcher_state'
        """)

        if cursor.fetchone():
            cursor.execute("SELECT COUNT(*) FROM watcher_state")
            count = cursor.fetchone()[0]
            print("✅ Database schema exists")
            print(f"   Stored state documents: {count}")
            result = True
        else:
            print("❌ Database schema not found. Run 'python setup_postgres.py' first.")
            result = False

        cursor.close()
        return result
    finally:
        conn.close()


def main():
    """Run all verification checks."""
    print("=" * 60)
    print("Issue Label Watcher - Setup Verification")
    print("=" * 60)

    settings = check_settings()
    results = {"Configuration": settings is not None}

    if settings is not None:
        checks = [
            ("GitHub Token", check_github_token),
            ("Notifications", check_notifications),
            ("State Storage", check_state_storage),
        ]
        for name, check_func in checks:
            try:
                results[name] = check_func(settings)
            except Exception as e:
                print(f"❌ {name} check failed with exception: {e}")
                results[name] = False

    print("\n" + "=" * 60)
    print("Verification Summary")
    print("=" * 60)

    for name, passed in results.items():
        status = "✅ PASS" if passed else "❌ FAIL"
        print(f"{status}: {name}")

    if all(results.values()):
        print("\n✅ All checks passed! Ready to run the watcher.")
        print("\nNext steps:")
        print("  python watch_labels.py recent")
        sys.exit(0)
    else:
        print("\n❌ Some checks failed. Please fix the issues above.")
        print("\nCommon solutions:")
        print("  - Set GITHUB_TOKEN: export GITHUB_TOKEN=your_token")
        print("  - List repositories: export ILW_REPOS='owner/name;owner/other'")
        print("  - Create schema: python setup_postgres.py")
        sys.exit(1)


if __name__ == "__main__":
    main()
