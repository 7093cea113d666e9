import copy
import re
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from ..models.db_models import (
    Portfolio,
    PortfolioSection,
    Project,
    Skill,
    Template,
    Testimonial,
)
from .local_store import LocalStoreError, portfolio_key
from .sections import SectionError, parse_section, section_payload

TEMPLATE_CATEGORIES = ("Engineers/Diploma", "Creatives", "Business", "Academic")

DEFAULT_THEME = {
    "primary_color": "#3B82F6",
    "secondary_color": "#10B981",
    "accent_color": "#F59E0B",
    "background_color": "#FFFFFF",
    "text_color": "#1F2937",
}
DEFAULT_TYPOGRAPHY = {
    "heading_font": "Inter",
    "body_font": "Open Sans",
    "font_size": "medium",
}
DEFAULT_LAYOUT = {
    "header_style": "centered",
    "spacing": "comfortable",
    "card_style": "rounded",
}
DEFAULT_VISIBLE_SECTIONS = {
    name: True
    for name in (
        "about",
        "education",
        "experience",
        "projects",
        "publications",
        "skills",
        "testimonials",
        "contact",
    )
}

SEED_TEMPLATES = [
    {
        "id": "engineer-classic",
        "name": "Engineer Classic",
        "category": "Engineers/Diploma",
        "description": "A clean single page layout for engineering projects and skills.",
        "tags": ["engineering", "projects", "skills"],
        "layout_type": "single-page",
        "default_config": {"theme": {"primary_color": "#2563EB"}},
    },
    {
        "id": "creative-gallery",
        "name": "Creative Gallery",
        "category": "Creatives",
        "description": "Image-first grid for designers, photographers and artists.",
        "tags": ["design", "gallery"],
        "layout_type": "grid",
        "default_config": {
            "theme": {"primary_color": "#DB2777", "secondary_color": "#F472B6"},
            "layout": {"card_style": "minimal"},
        },
    },
    {
        "id": "business-pro",
        "name": "Business Pro",
        "category": "Business",
        "description": "Professional layout with testimonials up front.",
        "is_premium": True,
        "tags": ["business", "consulting"],
        "layout_type": "multi-section",
        "default_config": {"layout": {"header_style": "left"}},
    },
    {
        "id": "academic-cv",
        "name": "Academic CV",
        "category": "Academic",
        "description": "Education, publications and research experience.",
        "tags": ["research", "publications"],
        "layout_type": "single-page",
        "default_config": {"typography": {"heading_font": "Merriweather"}},
    },
]

ITEM_MODELS = {
    "projects": Project,
    "skills": Skill,
    "testimonials": Testimonial,
}

PORTFOLIO_EDITABLE_FIELDS = (
    "title",
    "headline",
    "description",
    "profile_picture",
    "contact_email",
    "theme",
    "typography",
    "layout",
    "visible_sections",
    "social_links",
    "is_published",
)


def generate_slug(name):
    """Generate URL-safe slug from name."""
    slug = (name or "").lower().strip()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug[:100] or "portfolio"


def _merged(defaults, overrides):
    merged = dict(defaults)
    merged.update(overrides or {})
    return merged


class PortfolioStore:
    def __init__(self, session, store):
        self.session = session
        self.store = store

    def _commit(self, action):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            current_app.logger.error(f"Error while trying to {action}: {e}")
            return False
        return True

    def _mirror(self, portfolio):
        try:
            self.store.set(
                portfolio_key(portfolio.slug), portfolio.to_dict(include_content=True)
            )
        except LocalStoreError as e:
            current_app.logger.warning(f"Could not mirror portfolio {portfolio.slug}: {e}")

    # Templates

    def list_templates(self, category=None, premium=None):
        query = self.session.query(Template).filter(Template.is_active.is_(True))
        if category and category != "All":
            query = query.filter(Template.category == category)
        if premium is not None:
            query = query.filter(Template.is_premium.is_(bool(premium)))
        return query.order_by(Template.name).all()

    def list_categories(self):
        return list(TEMPLATE_CATEGORIES)

    def get_template(self, template_id):
        return self.session.get(Template, template_id)

    def seed_templates(self, templates=None):
        added = 0
        for template_data in templates or SEED_TEMPLATES:
            if self.session.get(Template, template_data["id"]) is None:
                self.session.add(Template(**template_data))
                added += 1
        if added and not self._commit("seed templates"):
            return 0
        return added

    # Portfolios

    def _unique_slug(self, title):
        base = generate_slug(title)
        slug = base
        suffix = 2
        while self.session.query(Portfolio).filter_by(slug=slug).first() is not None:
            slug = f"{base}-{suffix}"
            suffix += 1
        return slug

    def get_portfolio(self, portfolio_id):
        return self.session.get(Portfolio, portfolio_id)

    def get_owned(self, actor, portfolio_id):
        portfolio = self.get_portfolio(portfolio_id)
        if portfolio is None or actor is None:
            return None
        if portfolio.user_id != actor.user_id and not actor.is_admin:
            return None
        return portfolio

    def list_for_owner(self, actor):
        return (
            self.session.query(Portfolio)
            .filter(Portfolio.user_id == actor.user_id)
            .order_by(Portfolio.updated_at.desc())
            .all()
        )

    def create_portfolio(self, actor, template_id, title, description=None):
        if actor is None or not (title or "").strip():
            return None
        template = self.get_template(template_id)
        if template is None or not template.is_active:
            return None

        config = copy.deepcopy(template.default_config or {})
        portfolio = Portfolio(
            user_id=actor.user_id,
            template_id=template.id,
            title=title.strip(),
            slug=self._unique_slug(title),
            description=description,
            contact_email=actor.email or None,
            theme=_merged(DEFAULT_THEME, config.get("theme")),
            typography=_merged(DEFAULT_TYPOGRAPHY, config.get("typography")),
            layout=_merged(DEFAULT_LAYOUT, config.get("layout")),
            visible_sections=_merged(
                DEFAULT_VISIBLE_SECTIONS, config.get("visible_sections")
            ),
            social_links={},
        )
        self.session.add(portfolio)
        if not self._commit(f"create portfolio for {actor.username}"):
            return None
        current_app.logger.info(
            f"Portfolio {portfolio.slug} created by {actor.username} from {template.id}."
        )
        self._mirror(portfolio)
        return portfolio

    def update_portfolio(self, actor, portfolio_id, data):
        portfolio = self.get_owned(actor, portfolio_id)
        if portfolio is None:
            return None
        for field in PORTFOLIO_EDITABLE_FIELDS:
            if field not in data:
                continue
            value = data[field]
            if field in ("theme", "typography", "layout", "visible_sections", "social_links"):
                value = _merged(getattr(portfolio, field) or {}, value)
            setattr(portfolio, field, value)
        if data.get("is_published") and portfolio.published_at is None:
            portfolio.published_at = datetime.now(timezone.utc)
        portfolio.updated_at = datetime.now(timezone.utc)
        if not self._commit(f"update portfolio {portfolio_id}"):
            return None
        self._mirror(portfolio)
        return portfolio

    def delete_portfolio(self, actor, portfolio_id):
        portfolio = self.get_owned(actor, portfolio_id)
        if portfolio is None:
            return False
        slug = portfolio.slug
        self.session.delete(portfolio)
        if not self._commit(f"delete portfolio {portfolio_id}"):
            return False
        try:
            self.store.delete(portfolio_key(slug))
        except LocalStoreError as e:
            current_app.logger.warning(f"Could not drop local copy of {slug}: {e}")
        current_app.logger.info(f"Portfolio {slug} deleted.")
        return True

    def public_view(self, slug):
        """Published portfolio by slug with its content; counts a view.

        Falls back to the locally mirrored copy when the database is unavailable.
        """
        try:
            portfolio = (
                self.session.query(Portfolio)
                .filter_by(slug=slug, is_published=True)
                .first()
            )
            if portfolio is None:
                return None
            portfolio.view_count = (portfolio.view_count or 0) + 1
            self.session.commit()
            return portfolio.to_dict(include_content=True)
        except SQLAlchemyError as e:
            self.session.rollback()
            current_app.logger.warning(
                f"Database unavailable for portfolio {slug}, using local copy: {e}"
            )
        cached = self.store.get(portfolio_key(slug))
        if cached and cached.get("is_published"):
            return cached
        return None

    def list_public(self, page=1, limit=None, category=None, search=None):
        limit = limit or current_app.config.get("PUBLIC_PAGE_SIZE", 12)
        page = max(1, page or 1)
        query = self.session.query(Portfolio).filter(Portfolio.is_published.is_(True))
        if category and category != "All":
            query = query.join(Template).filter(Template.category == category)
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    Portfolio.title.ilike(pattern),
                    Portfolio.headline.ilike(pattern),
                    Portfolio.description.ilike(pattern),
                )
            )
        total = query.count()
        items = (
            query.order_by(Portfolio.view_count.desc(), Portfolio.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        pagination = {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        }
        return items, pagination

    # Projects, skills and testimonials

    def list_items(self, portfolio_id, kind):
        model = ITEM_MODELS.get(kind)
        if model is None:
            return None
        return (
            self.session.query(model)
            .filter_by(portfolio_id=portfolio_id)
            .order_by(model.sort_order, model.id)
            .all()
        )

    def _get_item(self, actor, portfolio_id, kind, item_id):
        model = ITEM_MODELS.get(kind)
        if model is None or self.get_owned(actor, portfolio_id) is None:
            return None
        item = self.session.get(model, item_id)
        if item is None or item.portfolio_id != portfolio_id:
            return None
        return item

    def add_item(self, actor, portfolio_id, kind, data):
        model = ITEM_MODELS.get(kind)
        portfolio = self.get_owned(actor, portfolio_id)
        if model is None or portfolio is None:
            return None
        values = {k: v for k, v in data.items() if k in model.EDITABLE_FIELDS}
        if kind == "skills" and "percentage" in values:
            values["percentage"] = max(0, min(100, int(values["percentage"])))
        item = model(portfolio_id=portfolio.id, **values)
        self.session.add(item)
        if not self._commit(f"add {kind} item to portfolio {portfolio_id}"):
            return None
        self._mirror(portfolio)
        return item

    def update_item(self, actor, portfolio_id, kind, item_id, data):
        item = self._get_item(actor, portfolio_id, kind, item_id)
        if item is None:
            return None
        for field in item.EDITABLE_FIELDS:
            if field in data:
                setattr(item, field, data[field])
        if kind == "skills":
            item.percentage = max(0, min(100, int(item.percentage)))
        if not self._commit(f"update {kind} item {item_id}"):
            return None
        self._mirror(item.portfolio)
        return item

    def delete_item(self, actor, portfolio_id, kind, item_id):
        item = self._get_item(actor, portfolio_id, kind, item_id)
        if item is None:
            return False
        portfolio = item.portfolio
        self.session.delete(item)
        if not self._commit(f"delete {kind} item {item_id}"):
            return False
        self._mirror(portfolio)
        return True

    # Education, experience, publications, contact and custom sections

    def list_sections(self, portfolio_id):
        rows = (
            self.session.query(PortfolioSection)
            .filter_by(portfolio_id=portfolio_id)
            .order_by(PortfolioSection.sort_order, PortfolioSection.id)
            .all()
        )
        return [(row, parse_section(row.kind, row.data)) for row in rows]

    def add_section(self, actor, portfolio_id, kind, data, title=None, sort_order=0):
        portfolio = self.get_owned(actor, portfolio_id)
        if portfolio is None:
            return None
        section = parse_section(kind, data)
        row = PortfolioSection(
            portfolio_id=portfolio.id,
            kind=section.kind.value,
            title=title,
            data=section_payload(section),
            sort_order=sort_order,
        )
        self.session.add(row)
        if not self._commit(f"add {section.kind.value} section to portfolio {portfolio_id}"):
            return None
        self._mirror(portfolio)
        return row, section

    def update_section(self, actor, portfolio_id, section_id, data, title=None):
        if self.get_owned(actor, portfolio_id) is None:
            return None
        row = self.session.get(PortfolioSection, section_id)
        if row is None or row.portfolio_id != portfolio_id:
            return None
        if data is not None and not isinstance(data, dict):
            raise SectionError(f"Section data must be an object, got {type(data).__name__}")
        merged = dict(row.data or {})
        merged.update(data or {})
        section = parse_section(row.kind, merged)
        row.data = section_payload(section)
        if title is not None:
            row.title = title
        if not self._commit(f"update section {section_id}"):
            return None
        self._mirror(row.portfolio)
        return row, section

    def delete_section(self, actor, portfolio_id, section_id):
        portfolio = self.get_owned(actor, portfolio_id)
        if portfolio is None:
            return False
        row = self.session.get(PortfolioSection, section_id)
        if row is None or row.portfolio_id != portfolio_id:
            return False
        self.session.delete(row)
        if not self._commit(f"delete section {section_id}"):
            return False
        self._mirror(portfolio)
        return True
