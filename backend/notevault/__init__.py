"""NoteVault: chat-driven note intake and publishing over a Telegram bot."""

__version__ = "0.1.0"
