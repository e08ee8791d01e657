"""Discord bot integration for Scrimbot.

The bot runs in-process with FastAPI, sharing the same event loop and the
same LobbyEngine. It serves the /scrim command, handles lobby buttons and
reactions, and re-renders lobby messages from EventBus updates.

Optional: if DISCORD_BOT_TOKEN is not set, the app runs without Discord.
"""
