"""
Run Discord Bot - Direct launch script
"""
import sys
import logging
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from dotenv import load_dotenv
load_dotenv()

from config.settings import get_settings

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ]
)

print("=" * 60)
print("  🤖 Knowledge Bot - Starting...")
print("=" * 60)

from knowledge_bot.discord_bot import create_bot

print("""
Bot Commands:
  /ask <question>  - Ask a question about the knowledge base
  /index           - Re-index Google Docs, Notion and the web page
  /help            - Show help information
  /status          - Show bot status
  /clear           - Clear your conversation history

You can also mention the bot or DM it with your question.

Press Ctrl+C to stop the bot.
""")

if not settings.bot.discord_token:
    print("❌ DISCORD_BOT_TOKEN not set in .env!")
    sys.exit(1)

bot = create_bot()
bot.run_bot()
