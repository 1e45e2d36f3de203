"""
Type-safe wrapper classes for Discord identifiers.

Discord snowflakes are 64-bit integers but travel as strings through JSON and
the key-value store. These wrappers keep one canonical string form so IDs can
be used as dictionary keys regardless of where they came from.
"""

from __future__ import annotations

from typing import Union

import discord


class _Snowflake:
    """
    Base class for snowflake wrappers.

    Attributes:
        _value (str): The snowflake ID stored as a string for JSON parity.

    Example:
        >>> uid = UserID(123456789012345678)
        >>> uid.to_int()
        123456789012345678
        >>> str(uid)
        '123456789012345678'
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, int, "_Snowflake"]) -> None:
        if isinstance(value, _Snowflake):
            self._value = value._value
        elif isinstance(value, bool):
            raise ValueError(f"Cannot create {type(self).__name__} from bool: {value}")
        elif isinstance(value, int):
            self._value = str(value)
        elif isinstance(value, str):
            self._value = str(int(value.strip()))
        else:
            raise ValueError(f"Cannot create {type(self).__name__} from {type(value).__name__}: {value}")

    @classmethod
    def from_int(cls, value: int):
        return cls(value)

    def to_int(self) -> int:
        """Convert to an integer for Discord API calls."""
        return int(self._value)

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, type(self)):
            return self._value == other._value
        if isinstance(other, str):
            return self._value == other
        if isinstance(other, int) and not isinstance(other, bool):
            return self._value == str(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)


class UserID(_Snowflake):
    """Type-safe wrapper for Discord user snowflake IDs."""

    __slots__ = ()

    @classmethod
    def from_user(cls, member: Union[discord.Member, discord.User]) -> "UserID":
        """Create a UserID from a Discord Member or User object."""
        return cls(member.id)


class GuildID(_Snowflake):
    """Type-safe wrapper for Discord guild snowflake IDs."""

    __slots__ = ()

    @classmethod
    def from_guild(cls, guild: discord.Guild) -> "GuildID":
        """Create a GuildID from a Discord Guild object."""
        return cls(guild.id)


class ChannelID(_Snowflake):
    """Type-safe wrapper for Discord channel snowflake IDs."""

    __slots__ = ()


class MessageID(_Snowflake):
    """Type-safe wrapper for Discord message snowflake IDs."""

    __slots__ = ()

    @classmethod
    def from_message(cls, message: discord.Message) -> "MessageID":
        return cls(message.id)
