from ..settings import get_settings


def setup_instructions() -> str:
    """Static onboarding text returned by setup_authentication."""
    settings = get_settings()
    return f"""🔐 Monarch Money - Setup Instructions

1️⃣ Visit the token refresh page:
   {settings.auth_refresh_url}

2️⃣ Enter your Monarch Money credentials:
   • Email and password
   • 2FA code if you have MFA enabled

3️⃣ Token will be saved securely and last for {settings.token_lifetime_days} days

4️⃣ Start using Monarch tools:
   • get_accounts - View all accounts
   • get_transactions - Recent transactions
   • get_budgets - Budget information

✅ Token persists for weeks/months
✅ No frequent re-authentication needed
✅ Secure encrypted storage"""


def not_authenticated(user_id: str) -> str:
    settings = get_settings()
    return (
        f"❌ No Monarch Money token found for user {user_id}.\n\n"
        f"Visit {settings.auth_refresh_url} to authenticate, "
        "or run setup_authentication for step-by-step instructions."
    )


def auth_status(user_id: str, has_credential: bool) -> str:
    settings = get_settings()
    status = (
        "✅ Monarch Money token found in secure storage"
        if has_credential
        else f"❌ No Monarch Money token found. Visit {settings.auth_refresh_url} to authenticate"
    )
    return f"{status}\n\n💡 User ID: {user_id}\n💡 Try get_accounts to test connection"
