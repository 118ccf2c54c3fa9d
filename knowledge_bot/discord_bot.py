"""
Discord Bot Module

Connects the Knowledge Agent to Discord.

Features:
- Answers questions grounded in the indexed knowledge sources
- Remembers the last turn per user/channel for follow-up questions
- Offers up to three follow-up questions as buttons
- Slash commands for asking, re-indexing, help, status and clearing memory
- Rate limiting to prevent abuse

Design Rationale:
- Uses discord.py for Discord API integration
- The agent is synchronous, so every call goes through run_in_executor
- Clicking a suggestion button asks that question as the clicking user

Usage:
    python run_bot.py

    Or:
    from knowledge_bot.discord_bot import create_bot
    bot = create_bot()
    bot.run_bot()
"""

import asyncio
import logging
import os
from datetime import datetime
from typing import Dict, List, Optional

import discord
from discord import app_commands
from discord.ext import commands

from config.settings import get_settings
from knowledge_bot.agent import KnowledgeAgent
from knowledge_bot.answer_pipeline import APOLOGY_MESSAGE, AnswerResult
from knowledge_bot.suggestions import MAX_SUGGESTIONS

# Configure logging
logger = logging.getLogger(__name__)

EMBED_DESCRIPTION_LIMIT = 4000  # Discord limit is 4096
BUTTON_LABEL_LIMIT = 80
RATE_LIMIT_MESSAGE = "⏳ Please wait a few seconds before asking another question."


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


class SuggestionView(discord.ui.View):
    """Row of follow-up question buttons under an answer."""

    def __init__(
        self,
        bot: "DiscordBot",
        suggestions: List[str],
        timeout: Optional[float] = 600,
    ):
        super().__init__(timeout=timeout)
        self.bot = bot
        self.suggestions = list(suggestions)[:MAX_SUGGESTIONS]

        for suggestion in self.suggestions:
            button = discord.ui.Button(
                label=_truncate(suggestion, BUTTON_LABEL_LIMIT),
                style=discord.ButtonStyle.secondary,
            )
            button.callback = self._make_callback(suggestion)
            self.add_item(button)

    def _make_callback(self, question: str):
        async def callback(interaction: discord.Interaction):
            await self.bot._handle_suggestion_click(interaction, question)
        return callback


class DiscordBot(commands.Bot):
    """
    Discord Bot answering questions from the indexed knowledge base.

    Features:
    - Natural language Q&A via mention, DM or /ask
    - /index to re-read every knowledge source
    - Follow-up suggestion buttons
    - Slash commands for help, status and clearing memory
    """

    def __init__(
        self,
        command_prefix: Optional[str] = None,
        agent: Optional[KnowledgeAgent] = None,
        **kwargs
    ):
        """
        Initialize the Discord Bot.

        Args:
            command_prefix: Prefix for text commands (default from settings)
            agent: Optional pre-configured Knowledge Agent
            **kwargs: Additional arguments for commands.Bot
        """
        self.settings = get_settings()

        # MESSAGE_CONTENT is required to read message content (must be enabled in Developer Portal)
        intents = discord.Intents.default()
        intents.message_content = True
        intents.guilds = True

        super().__init__(
            command_prefix=command_prefix or self.settings.bot.command_prefix,
            intents=intents,
            **kwargs
        )

        # Knowledge Agent - created lazily
        self._agent = agent
        self._is_ready = False

        # on_ready fires again after gateway reconnects; startup work runs once
        self._startup_done = False
        self._startup_task: Optional[asyncio.Task] = None

        # Rate limiting (simple in-memory)
        self._rate_limits: Dict[int, datetime] = {}
        self._rate_limit_seconds = self.settings.bot.rate_limit_seconds

        # Statistics
        self._stats = {
            "questions_answered": 0,
            "errors": 0,
            "reindexes": 0,
            "start_time": None,
        }

        logger.info("DiscordBot initialized")

    @property
    def agent(self) -> KnowledgeAgent:
        """Get the Knowledge Agent, initializing if needed."""
        if self._agent is None:
            logger.info("Initializing Knowledge Agent...")
            self._agent = KnowledgeAgent(settings=self.settings)
        return self._agent

    async def setup_hook(self):
        """Called when the bot is starting up."""
        await self._register_commands()
        logger.info("Slash commands registered")

    async def _register_commands(self):
        """Register slash commands with Discord."""

        @self.tree.command(name="ask", description="Ask a question about the knowledge base")
        @app_commands.describe(question="Your question")
        async def ask_command(interaction: discord.Interaction, question: str):
            await self._handle_question(interaction, question)

        @self.tree.command(name="index", description="Re-index all knowledge sources")
        async def index_command(interaction: discord.Interaction):
            await self._handle_index(interaction)

        @self.tree.command(name="help", description="Get help using the bot")
        async def help_command(interaction: discord.Interaction):
            await self._send_help(interaction)

        @self.tree.command(name="status", description="Check bot status and statistics")
        async def status_command(interaction: discord.Interaction):
            await self._send_status(interaction)

        @self.tree.command(name="clear", description="Clear your conversation history")
        async def clear_command(interaction: discord.Interaction):
            await self._clear_history(interaction)

        # Sync commands with Discord
        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except Exception as e:
            logger.error(f"Failed to sync commands: {e}")

    async def on_ready(self):
        """Called when the bot is ready and connected."""
        self._is_ready = True

        if self._startup_done:
            logger.info("Reconnected to Discord, skipping startup work")
            return
        self._startup_done = True
        self._stats["start_time"] = datetime.now()

        logger.info(f"Bot is ready! Logged in as {self.user}")
        logger.info(f"Connected to {len(self.guilds)} guild(s)")

        activity = discord.Activity(
            type=discord.ActivityType.listening,
            name="your questions | /ask"
        )
        await self.change_presence(activity=activity)

        # Initialize agent (and the first index) in background
        self._startup_task = asyncio.create_task(self._async_init_agent())

    async def _async_init_agent(self):
        """Initialize the agent and run the startup index without blocking."""
        try:
            loop = asyncio.get_event_loop()
            await loop.run_in_executor(None, lambda: self.agent)
            logger.info("Knowledge Agent initialized successfully")

            if self.settings.bot.index_on_startup:
                status = await loop.run_in_executor(None, self.agent.reindex)
                self._stats["reindexes"] += 1
                logger.info(f"Startup index: {status}")
        except Exception as e:
            logger.error(f"Failed to initialize Knowledge Agent: {e}")

    async def on_message(self, message: discord.Message):
        """Handle incoming messages."""
        # Ignore messages from the bot itself and other bots
        if message.author == self.user or message.author.bot:
            return

        is_mentioned = self.user in message.mentions
        is_dm = isinstance(message.channel, discord.DMChannel)

        if is_mentioned or is_dm:
            content = message.content
            if is_mentioned:
                content = content.replace(f"<@{self.user.id}>", "").strip()
                content = content.replace(f"<@!{self.user.id}>", "").strip()

            if content:
                await self._handle_message_question(message, content)
            else:
                await message.reply(
                    "👋 Hi! Ask me a question about the knowledge base.\n"
                    "Use `/ask` or just mention me with your question."
                )

        await self.process_commands(message)

    async def _get_answer(self, question: str, user_id: int, channel_id: int) -> AnswerResult:
        """Get an answer from the agent (runs in an executor)."""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            None,
            lambda: self.agent.ask(
                question=question,
                user_id=user_id,
                channel_id=channel_id,
            )
        )

    def _record_answer(self, result: AnswerResult) -> None:
        if result.text == APOLOGY_MESSAGE:
            self._stats["errors"] += 1
        else:
            self._stats["questions_answered"] += 1

    async def _handle_message_question(self, message: discord.Message, question: str):
        """Handle a question from a regular message."""
        if not self._check_rate_limit(message.author.id):
            await message.reply(RATE_LIMIT_MESSAGE, delete_after=5)
            return

        async with message.channel.typing():
            try:
                result = await self._get_answer(
                    question=question,
                    user_id=message.author.id,
                    channel_id=message.channel.id,
                )
                await message.reply(**self._render(question, result))
                self._record_answer(result)
            except Exception as e:
                logger.error(f"Error handling question: {e}")
                self._stats["errors"] += 1
                await message.reply(f"❌ {APOLOGY_MESSAGE}")

    async def _handle_question(self, interaction: discord.Interaction, question: str):
        """Handle a question from a slash command."""
        if not self._check_rate_limit(interaction.user.id):
            await interaction.response.send_message(RATE_LIMIT_MESSAGE, ephemeral=True)
            return

        # Defer the response (shows "thinking...")
        await interaction.response.defer()

        try:
            result = await self._get_answer(
                question=question,
                user_id=interaction.user.id,
                channel_id=interaction.channel_id,
            )
            await interaction.followup.send(**self._render(question, result))
            self._record_answer(result)
        except Exception as e:
            logger.error(f"Error handling slash command: {e}")
            self._stats["errors"] += 1
            await interaction.followup.send(f"❌ {APOLOGY_MESSAGE}")

    async def _handle_suggestion_click(self, interaction: discord.Interaction, question: str):
        """Ask a suggested follow-up question on behalf of the clicking user."""
        await self._handle_question(interaction, question)

    async def _handle_index(self, interaction: discord.Interaction):
        """Re-index every knowledge source."""
        await interaction.response.send_message(
            f"Got it, {interaction.user.display_name}! Starting the indexing process. "
            "This might take a moment..."
        )

        try:
            loop = asyncio.get_event_loop()
            status = await loop.run_in_executor(None, self.agent.reindex)
            self._stats["reindexes"] += 1
            await interaction.followup.send(status)
        except Exception as e:
            logger.error(f"Error re-indexing: {e}")
            self._stats["errors"] += 1
            await interaction.followup.send("❌ Indexing failed. Please try again later.")

    def _render(self, question: str, result: AnswerResult) -> dict:
        """Build send/reply kwargs: the answer embed plus suggestion buttons."""
        kwargs = {"embed": self._format_answer_embed(question, result)}
        if result.has_suggestions:
            kwargs["view"] = SuggestionView(
                self,
                result.suggestions,
                timeout=self.settings.bot.memory_ttl_seconds,
            )
        return kwargs

    def _format_answer_embed(
        self,
        question: str,
        result: AnswerResult,
    ) -> discord.Embed:
        """Format an AnswerResult as a Discord embed."""
        color = discord.Color.red() if result.text == APOLOGY_MESSAGE else discord.Color.blue()

        embed = discord.Embed(
            title="📚 Knowledge Base",
            description=_truncate(result.text or "No answer available.", EMBED_DESCRIPTION_LIMIT),
            color=color,
            timestamp=datetime.now()
        )

        embed.add_field(
            name="❓ Question",
            value=_truncate(question, 1000),
            inline=False
        )

        if result.has_suggestions:
            embed.add_field(
                name="💡 You might also want to ask:",
                value="\n".join(f"• {s}" for s in result.suggestions[:MAX_SUGGESTIONS]),
                inline=False
            )

        embed.set_footer(text="Knowledge Bot | Use /help for more info")

        return embed

    async def _send_help(self, interaction: discord.Interaction):
        """Send help information."""
        embed = discord.Embed(
            title="🤖 Knowledge Bot - Help",
            description="I answer questions using the indexed Google Doc, Notion page and web page.",
            color=discord.Color.blue()
        )

        embed.add_field(
            name="💬 How to Ask Questions",
            value=(
                "**Option 1:** Use `/ask` command\n"
                "**Option 2:** Mention me with your question\n"
                "**Option 3:** Send me a DM\n"
                "**Option 4:** Click a suggested follow-up button"
            ),
            inline=False
        )

        embed.add_field(
            name="⚡ Commands",
            value=(
                "`/ask` - Ask a question\n"
                "`/index` - Re-index all knowledge sources\n"
                "`/help` - Show this help message\n"
                "`/status` - Bot status and stats\n"
                "`/clear` - Clear your conversation history"
            ),
            inline=False
        )

        embed.add_field(
            name="💡 Tips",
            value=(
                "• I remember your last question for 10 minutes, so short follow-ups work\n"
                "• Run `/index` after the source documents change"
            ),
            inline=False
        )

        await interaction.response.send_message(embed=embed)

    async def _send_status(self, interaction: discord.Interaction):
        """Send bot status information."""
        uptime = "N/A"
        if self._stats["start_time"]:
            delta = datetime.now() - self._stats["start_time"]
            hours, remainder = divmod(int(delta.total_seconds()), 3600)
            minutes, seconds = divmod(remainder, 60)
            uptime = f"{hours}h {minutes}m {seconds}s"

        stats = self.agent.get_stats()
        knowledge = stats.get("knowledge_base", {})
        llm = stats.get("llm", {})

        embed = discord.Embed(
            title="📊 Bot Status",
            color=discord.Color.green() if self._is_ready else discord.Color.red()
        )

        embed.add_field(
            name="🟢 Status",
            value="Online" if self._is_ready else "Initializing...",
            inline=True
        )
        embed.add_field(name="⏱️ Uptime", value=uptime, inline=True)
        embed.add_field(name="🏠 Servers", value=str(len(self.guilds)), inline=True)
        embed.add_field(
            name="❓ Questions Answered",
            value=str(self._stats["questions_answered"]),
            inline=True
        )
        embed.add_field(
            name="📚 Knowledge Base",
            value=(
                f"{knowledge.get('characters', 0)} characters"
                if knowledge.get("indexed") else "Not indexed"
            ),
            inline=True
        )
        embed.add_field(
            name="🤖 LLM Provider",
            value=f"{llm.get('provider')} (fallback: {llm.get('fallback') or 'none'})",
            inline=True
        )

        embed.set_footer(text=f"Latency: {round(self.latency * 1000)}ms")

        await interaction.response.send_message(embed=embed)

    async def _clear_history(self, interaction: discord.Interaction):
        """Clear conversation history for the user in this channel."""
        try:
            self.agent.clear_conversation(interaction.user.id, interaction.channel_id)
            await interaction.response.send_message(
                "✅ Conversation history cleared!",
                ephemeral=True
            )
        except Exception as e:
            logger.error(f"Error clearing history: {e}")
            await interaction.response.send_message(
                "❌ Failed to clear conversation history.",
                ephemeral=True
            )

    def _check_rate_limit(self, user_id: int) -> bool:
        """Check if user is rate limited."""
        now = datetime.now()

        # Drop users whose window has passed so the map stays small
        self._rate_limits = {
            uid: last for uid, last in self._rate_limits.items()
            if (now - last).total_seconds() < self._rate_limit_seconds
        }

        if user_id in self._rate_limits:
            elapsed = (now - self._rate_limits[user_id]).total_seconds()
            if elapsed < self._rate_limit_seconds:
                return False

        self._rate_limits[user_id] = now
        return True

    def run_bot(self, token: Optional[str] = None):
        """
        Run the bot with the given token.

        Args:
            token: Discord bot token (or from settings/environment)
        """
        token = token or self.settings.bot.discord_token or os.getenv("DISCORD_BOT_TOKEN")

        if not token:
            raise ValueError(
                "Discord bot token not provided. "
                "Set DISCORD_BOT_TOKEN environment variable or pass token directly."
            )

        logger.info("Starting Discord bot...")
        self.run(token.strip('"').strip("'"), log_handler=None)


def create_bot(**kwargs) -> DiscordBot:
    """
    Factory function to create a configured Discord bot.

    Args:
        **kwargs: Arguments to pass to DiscordBot

    Returns:
        Configured DiscordBot instance
    """
    return DiscordBot(**kwargs)
