import logging
import math
from datetime import date

import click
from flask import Blueprint, Flask, current_app, jsonify, request, session

from crowdfunding.catalog import Catalog
from crowdfunding.errors import CrowdfundingError, DuplicateRecordError
from crowdfunding.repositories import DataStore
from crowdfunding.seed import seed_data
from crowdfunding.stats import (backer_leaderboard, project_performance, reward_progress,
                                system_statistics, user_activity)

logger = logging.getLogger(__name__)

bp = Blueprint("crowdfunding", __name__)


# ---------------- Helper ----------------
def get_data() -> DataStore:
    return current_app.extensions["crowdfunding"]


def current_user():
    uid = session.get('user_id')
    if uid:
        return get_data().users.find_by_id(uid)
    return None


def setup_logging(level="INFO"):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------- Routes ----------------
@bp.route('/')
def project_list():
    q = request.args.get('q', '')
    category = request.args.get('category')
    sort = request.args.get('sort', 'newest')

    catalog = Catalog(get_data())
    projects = catalog.list_projects(q, category, sort)
    user = current_user()
    return jsonify(
        projects=[p.to_dict() for p in projects],
        categories=[c.to_dict() for c in catalog.categories()],
        q=q, category=category, sort=sort,
        user=user.to_dict() if user else None,
    )


@bp.route('/project/<project_id>')
def project_detail(project_id):
    data = get_data()
    catalog = Catalog(data)
    project = catalog.get_project(project_id)
    if project is None:
        return jsonify(error={"message": "Project not found"}), 404

    today = date.today()
    pledges = data.pledges.find_by_project(project_id)
    tiers = catalog.reward_tiers(project_id)
    category = catalog.get_category(project.category_id)
    user = current_user()
    return jsonify(
        project=project.to_dict(today),
        category=category.to_dict() if category else None,
        reward_tiers=[t.to_dict() for t in tiers],
        statistics=catalog.project_statistics(project_id, today).to_dict(today),
        leaderboard=backer_leaderboard(project_id, pledges, data.users.load_all()),
        tier_status=reward_progress(project_id, user.user_id, pledges, tiers) if user else None,
    )


@bp.route('/pledge', methods=['POST'])
def make_pledge():
    user = current_user()
    project_id = request.form.get('project_id')
    reward_tier_id = request.form.get('reward_tier_id') or None
    try:
        amount = float(request.form.get('amount', '0'))
        if not math.isfinite(amount):
            raise ValueError(amount)
    except ValueError:
        return jsonify(accepted=False, error=False, pledge=None,
                       message='Pledge amount must be a number'), 400

    result = get_data().process_pledge(project_id, user, amount, reward_tier_id)
    if result.accepted:
        status = 200
    elif user is None:
        status = 401
    elif result.error:
        status = 503
    else:
        status = 422
    return jsonify(result.to_dict()), status


@bp.route('/pledges/mine')
def my_pledges():
    user = current_user()
    if user is None:
        return jsonify(error={"message": "User not logged in"}), 401
    pledges = get_data().engine.user_pledges(user.user_id)
    return jsonify(pledges=[p.to_dict() for p in pledges])


@bp.route('/stats')
def stats():
    data = get_data()
    pledges = data.pledges.load_all()
    projects = data.projects.load_all()
    users = data.users.load_all()
    user = current_user()
    return jsonify(
        system=system_statistics(pledges, projects, users).to_dict(),
        projects=[row.to_dict() for row in project_performance(projects, pledges)],
        users=[row.to_dict() for row in user_activity(users, pledges)],
        user=user.to_dict() if user else None,
    )


# ---------------- Auth ----------------
@bp.route('/login', methods=['POST'])
def login():
    username = request.form.get('username', '')
    password = request.form.get('password', '')
    user = get_data().authenticate(username, password)
    if user:
        session['user_id'] = user.user_id
        session['username'] = user.username
        logger.info("User %s logged in", user.user_id)
        return jsonify(message='Logged in', user=user.to_dict())
    return jsonify(error={"message": 'Invalid username or password'}), 401


@bp.route('/logout')
def logout():
    session.pop('user_id', None)
    session.pop('username', None)
    return jsonify(message='Logged out')


@bp.route('/register', methods=['POST'])
def register():
    username = request.form.get('username', '').strip()
    password = request.form.get('password', '')
    email = request.form.get('email', '')
    if not username or not password:
        return jsonify(error={"message": 'Username and password are required'}), 400
    try:
        user = get_data().users.register(username, email, password)
    except DuplicateRecordError:
        return jsonify(error={"message": 'Username already taken'}), 409
    return jsonify(message='Registered', user=user.to_dict()), 201


# ---------------- Errors ----------------
def handle_crowdfunding_error(exc):
    logger.error("%s: %s", type(exc).__name__, exc)
    return jsonify(exc.to_response()), exc.http_status


# ---------------- App ----------------
def create_app(config=None):
    app = Flask(__name__)
    app.config['SECRET_KEY'] = 'secretkey'
    app.config['CROWDFUNDING_DATA_DIR'] = 'data'
    app.config['CROWDFUNDING_LOG_LEVEL'] = 'INFO'
    app.config.from_prefixed_env()
    if config:
        app.config.update(config)

    setup_logging(app.config['CROWDFUNDING_LOG_LEVEL'])
    DataStore().init_app(app)
    app.register_blueprint(bp)
    app.register_error_handler(CrowdfundingError, handle_crowdfunding_error)

    @app.cli.command('seed')
    def seed_command():
        """Replace the data directory contents with sample data."""
        counts = seed_data(get_data())
        click.echo(f"Data seeded: {counts}")

    return app


# ---------------- Run ----------------
if __name__ == '__main__':
    create_app().run(debug=True)
