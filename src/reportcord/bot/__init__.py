"""
Discord integration for Reportcord.

- **discord_bridge.py**: Authority tiers, the enforcement command dispatcher,
  message lookup and the notification channel observer.
- **cogs/**: Slash and message commands plus event listeners.
"""
