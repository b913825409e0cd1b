import logging
import random
import sys
from datetime import date, timedelta

from crowdfunding.models import Category, Project, RewardTier, User, gen_project_id
from crowdfunding.repositories import DataStore

logger = logging.getLogger(__name__)


def seed_data(data, today=None, rng=random):
    today = today or date.today()

    # reset every collection
    data.pledges.save_all([])

    # ---- Users ----
    users = [User(f"U{i:03d}", f"user{i}", f"user{i}@example.com", "pass123")
             for i in range(1, 11)]
    data.users.save_all(users)

    # ---- Categories ----
    cat_names = ["Technology", "Art", "Education"]
    categories = [Category(f"C{i:02d}", name, f"{name} projects")
                  for i, name in enumerate(cat_names, start=1)]
    data.categories.save_all(categories)

    # ---- Projects ----
    projects = []
    used_ids = set()
    for i in range(1, 9):
        project_id = gen_project_id(rng)
        while project_id in used_ids:
            project_id = gen_project_id(rng)
        used_ids.add(project_id)
        projects.append(Project(
            project_id=project_id,
            name=f"Project {i}",
            goal_amount=float(rng.randint(5000, 20000)),
            deadline=today + timedelta(days=rng.randint(5, 30)),
            current_amount=0.0,
            category_id=rng.choice(categories).category_id,
            description=f"This is description for project {i}.",
            creator_id=rng.choice(users).user_id,
        ))
    data.projects.save_all(projects)

    # ---- Reward Tiers ----
    tiers = []
    for p in projects:
        for r in range(1, 4):
            quantity = rng.randint(5, 20)
            tiers.append(RewardTier(
                tier_id=f"T{len(tiers) + 1:03d}",
                project_id=p.project_id,
                name=f"Reward {r}",
                minimum_amount=float(100 * r),
                total_quantity=quantity,
                remaining_quantity=quantity,
                description=f"Reward {r} for {p.name}",
            ))
    data.reward_tiers.save_all(tiers)

    # ---- Pledges (through the engine so totals stay consistent) ----
    accepted = 0
    for _ in range(10):
        user = rng.choice(users)
        tier = rng.choice(tiers)
        amount = tier.minimum_amount + rng.randint(0, 200)
        if data.process_pledge(tier.project_id, user, amount, tier.tier_id).accepted:
            accepted += 1

    rejected = 0
    for _ in range(10):
        user = rng.choice(users)
        tier = rng.choice(tiers)
        amount = tier.minimum_amount - 50   # below the minimum on purpose
        if not data.process_pledge(tier.project_id, user, amount, tier.tier_id).accepted:
            rejected += 1

    logger.info("Seeded %d users, %d projects, %d tiers, %d accepted and %d rejected pledges",
                len(users), len(projects), len(tiers), accepted, rejected)
    return {"users": len(users), "projects": len(projects), "tiers": len(tiers),
            "accepted": accepted, "rejected": rejected}


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    data_dir = sys.argv[1] if len(sys.argv) > 1 else "data"
    counts = seed_data(DataStore(data_dir))
    print("Data seeded with successful + rejected pledges:", counts)
