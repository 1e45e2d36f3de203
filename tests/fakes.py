"""Fake collaborators and identifiers shared by the report tests."""

from reportcord.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID

GUILD = GuildID(1000)
CHANNEL = ChannelID(2000)
REPORTER = UserID(3000)
TARGET = UserID(4000)
BOT = UserID(9999)
MESSAGE = MessageID(5000)


class FakeClassifier:
    """Returns canned responses in order (the last one repeats) and records every prompt."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts = []

    async def classify(self, prompt):
        self.prompts.append(prompt)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class FakeDispatcher:
    """Records dispatch calls; actions listed in ``failing`` raise."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls = []

    async def execute(self, action_name, args, options, authorization):
        self.calls.append((action_name, list(args), dict(options), authorization))
        authorization.ensure_active()
        if action_name in self.failing:
            raise RuntimeError(f"{action_name} failed")
        return True


class FakeMessageSource:
    def __init__(self, messages=None):
        self.messages = dict(messages or {})
        self.calls = 0

    async def fetch_message(self, guild_id, channel_id, message_id):
        self.calls += 1
        return self.messages.get(message_id)
