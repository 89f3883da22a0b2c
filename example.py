"""Example usage of the entity_tables library."""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from entity_tables import (
    Cascade,
    DatabaseConfig,
    DatabaseManager,
    EntityParser,
    Int16,
    Registry,
    column,
    embedded,
    is_unloaded,
    many_to_one,
    one_to_many,
)


@dataclass
class Address:
    street: str
    city: str
    zip: str | None = None


@dataclass
class Guild:
    id: uuid.UUID = column(primary_key=True)
    name: str = ""
    members: list[Player] = one_to_many(mapped_by="guild", cascade=Cascade.ALL)


@dataclass
class Player:
    id: uuid.UUID = column(primary_key=True)
    name: str = ""
    level: Int16 = 1
    home: Address | None = embedded(prefix="home")
    guild_id: uuid.UUID | None = None
    guild: Guild | None = many_to_one(fetch="lazy")


with DatabaseManager() as manager:
    manager.register("main", DatabaseConfig(file=":memory:"))
    registry = Registry.using(manager)

    guilds = registry.register(Guild)
    players = registry.register(Player)

    guild = Guild(uuid.uuid4(), "Knights")
    guild.members.extend(
        [
            Player(uuid.uuid4(), "Alice", 30, Address("1 Main St", "Springfield", "12345")),
            Player(uuid.uuid4(), "Bob", 25),
            Player(uuid.uuid4(), "Charlie", 35, Address("9 High St", "Shelbyville")),
        ]
    )

    print("Creating a guild and its members...")
    guilds.create(guild)
    print(f"  {guilds.count()} guild(s), {players.count()} player(s)")

    print("\nPlayers above level 26:")
    for player in players.find_many().where("level", ">", 26).order_by("name").execute():
        city = player.home.city if player.home else "-"
        print(f"  {player.name}, level {player.level}, lives in {city}")

    print("\nLazy guild of Bob:")
    bob = players.find_one().where("name", "Bob").with_relationships().execute()
    print(f"  loaded before access: {not is_unloaded(bob.guild)}")
    print(f"  guild: {bob.guild.name}")

    print("\nLevelling up everyone in Springfield...")
    updated = players.update().set("level", 40).where("home.city", "Springfield").execute()
    print(f"  updated {updated} row(s)")

    print("\nDeleting the guild cascades to its members...")
    guilds.delete(guild)
    print(f"  {players.count()} player(s) left")

# Entities can also come from the definition language
schema = EntityParser().parse(
    """
    Item as items { id: int32 @id, label: text, weight: double? }
    """
)
with DatabaseManager() as manager:
    manager.register("main", DatabaseConfig(file=":memory:"))
    items = schema.register_all(Registry.using(manager))["Item"]
    items.create(schema["Item"](id=1, label="Sword", weight=3.5))
    print(f"\nItems: {items.find_many().execute()}")
