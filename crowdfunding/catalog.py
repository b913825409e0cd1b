"""Project browsing: search, category filter, sorting and detail lookups."""
from datetime import date

from crowdfunding.stats import project_statistics

SORT_KEYS = ("newest", "deadline", "funding", "progress", "name")


def search_projects(projects, term):
    if term is None or not term.strip():
        return list(projects)
    term = term.strip().lower()
    return [p for p in projects
            if term in p.name.lower() or term in p.description.lower()]


def filter_by_category(projects, category_id):
    if not category_id:
        return list(projects)
    return [p for p in projects if p.category_id == category_id]


def sort_projects(projects, sort_by="name"):
    sort_by = (sort_by or "name").lower()
    if sort_by == "newest":
        # no creation date on disk; higher ids are newer
        return sorted(projects, key=lambda p: p.project_id, reverse=True)
    if sort_by == "deadline":
        return sorted(projects, key=lambda p: p.deadline)
    if sort_by == "funding":
        return sorted(projects, key=lambda p: p.current_amount, reverse=True)
    if sort_by == "progress":
        return sorted(projects, key=lambda p: p.funding_progress, reverse=True)
    return sorted(projects, key=lambda p: p.name)


class Catalog:
    def __init__(self, data):
        self.data = data

    def list_projects(self, term=None, category_id=None, sort_by="name"):
        projects = self.data.projects.load_all()
        projects = filter_by_category(projects, category_id)
        projects = search_projects(projects, term)
        return sort_projects(projects, sort_by)

    def get_project(self, project_id):
        return self.data.projects.find_by_id(project_id)

    def categories(self):
        return self.data.categories.load_all()

    def get_category(self, category_id):
        return self.data.categories.find_by_id(category_id)

    def reward_tiers(self, project_id):
        return self.data.reward_tiers.find_by_project(project_id)

    def project_statistics(self, project_id, today=None):
        project = self.get_project(project_id)
        if project is None:
            return None
        return project_statistics(
            project,
            self.data.pledges.find_by_project(project_id),
            self.reward_tiers(project_id),
            today or date.today(),
        )
