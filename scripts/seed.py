"""Database seeder for local development of the group messaging API."""
import argparse
import asyncio
import random
import time

from groupchat.database import Base, async_session, engine
from groupchat.models import Group, Message, User
from groupchat.security import create_access_token
from groupchat.store import SqlStore

PHRASES = ["on my way", "sounds good", "who's bringing snacks?", "running late",
           "see you there", "lol", "did anyone get the tickets?", "brb",
           "check the photos", "happy birthday!", "meeting moved to 3", "nice"]


async def seed(small: bool = False):
    num_users = 10 if small else 200
    num_groups = 5 if small else 100
    messages_per_group = 20 if small else 500

    print(f"Seeding: {num_users} users, {num_groups} groups, ~{num_groups * messages_per_group} messages")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        store = SqlStore(session)

        users = []
        for i in range(num_users):
            user = await store.create(
                User,
                username=f"user_{i:04d}",
                email=f"user_{i:04d}@example.com",
                registration_id=f"device-{i:04d}" if random.random() > 0.5 else None,
            )
            users.append(user)
        print(f"  Created {len(users)} users")

        # Each user befriends a handful of the users after them.
        friendships = 0
        for index, user in enumerate(users):
            later = users[index + 1:]
            chosen = random.sample(later, k=min(len(later), random.randint(1, 5)))
            await store.add_friends(user, chosen)
            friendships += len(chosen)
        print(f"  Created {friendships} friendships")

        total_messages = 0
        for g in range(num_groups):
            founder = random.choice(users)
            friends = await store.get_friends(founder)
            members = [founder, *random.sample(friends, k=min(len(friends), random.randint(1, 6)))]

            group = await store.create(Group, name=f"Group {g}")
            await store.add_users(group, members)

            messages = []
            for _ in range(messages_per_group):
                author = random.choice(members)
                messages.append(
                    await store.create(
                        Message, user_id=author.id, group_id=group.id, text=random.choice(PHRASES)
                    )
                )
            total_messages += len(messages)

            # Most members have read part of the feed.
            for member in members:
                if random.random() > 0.3:
                    await store.add_last_read(member, group.id, random.choice(messages))

            if g % 10 == 0:
                print(f"  Group {g}: {len(members)} members, {len(messages)} messages")

        await session.commit()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Users: {num_users}")
    print(f"  Groups: {num_groups}")
    print(f"  Messages: {total_messages}")
    print(f"  Token for {users[0].username}: {create_access_token(users[0].id)}")


def main():
    parser = argparse.ArgumentParser(description="Seed the group messaging database")
    parser.add_argument("--small", action="store_true", help="Use small dataset (5 groups)")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small))


if __name__ == "__main__":
    main()
