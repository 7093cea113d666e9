import math
import uuid
from datetime import date, datetime, time, timezone

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .. import db


def _iso(value):
    return value.isoformat() if value else None


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=True)
    first_name = db.Column(db.String(80), nullable=True)
    last_name = db.Column(db.String(80), nullable=True)
    contact_number = db.Column(db.String(40), nullable=True)
    profile_image = db.Column(db.String(255), nullable=True)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(20), nullable=False, default="user")  # user, admin, recruiter
    created_at = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    posts = db.relationship(
        "Post", backref="author", lazy=True, cascade="all, delete-orphan"
    )
    portfolios = db.relationship(
        "Portfolio", backref="owner", lazy=True, cascade="all, delete-orphan"
    )

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def display_name(self):
        full_name = " ".join(
            part for part in (self.first_name, self.last_name) if part
        ).strip()
        return full_name or self.username

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "display_name": self.display_name,
            "contact_number": self.contact_number,
            "profile_image": self.profile_image,
            "role": self.role,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<User {self.username}>"


class Post(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    # Canonical identifiers of mentioned users
    tagged_users = db.Column(db.JSON, nullable=False, default=list)
    images = db.Column(db.JSON, nullable=False, default=list)
    videos = db.Column(db.JSON, nullable=False, default=list)
    share_count = db.Column(db.Integer, nullable=False, default=0)
    published = db.Column(db.Boolean, nullable=False, default=True)
    timestamp = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    last_edited = db.Column(db.DateTime, nullable=True)

    likes = db.relationship(
        "Like", backref="post", lazy=True, cascade="all, delete-orphan"
    )
    comments = db.relationship(
        "Comment",
        backref="post",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Comment.id",
    )

    def liked_by(self, user_id):
        return any(like.user_id == user_id for like in self.likes)

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "author": self.author.username,
            "author_name": self.author.display_name,
            "author_role": self.author.role,
            "tagged_users": list(self.tagged_users or []),
            "images": list(self.images or []),
            "videos": list(self.videos or []),
            "likes": [like.user.username for like in self.likes],
            "like_count": len(self.likes),
            "comments": [comment.to_dict() for comment in self.comments],
            "comment_count": len(self.comments),
            "shares": self.share_count,
            "published": self.published,
            "timestamp": _iso(self.timestamp),
            "last_edited": _iso(self.last_edited),
        }

    def __repr__(self):
        return f"<Post {self.title}>"


class Like(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    post_id = db.Column(db.Integer, db.ForeignKey("post.id"), nullable=False)
    timestamp = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    user = db.relationship("User")

    __table_args__ = (db.UniqueConstraint("user_id", "post_id", name="_user_post_uc"),)

    def __repr__(self):
        return f"<Like User {self.user_id} Post {self.post_id}>"


class Comment(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    content = db.Column(db.Text, nullable=False)
    timestamp = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    post_id = db.Column(db.Integer, db.ForeignKey("post.id"), nullable=False)

    author = db.relationship("User")
    replies = db.relationship(
        "Reply",
        backref="comment",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Reply.id",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "post_id": self.post_id,
            "author": self.author.username,
            "author_name": self.author.display_name,
            "content": self.content,
            "timestamp": _iso(self.timestamp),
            "replies": [reply.to_dict() for reply in self.replies],
        }

    def __repr__(self):
        return f"<Comment {self.id} by User {self.user_id} on Post {self.post_id}>"


class Reply(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    content = db.Column(db.Text, nullable=False)
    timestamp = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    comment_id = db.Column(db.Integer, db.ForeignKey("comment.id"), nullable=False)

    author = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "comment_id": self.comment_id,
            "author": self.author.username,
            "author_name": self.author.display_name,
            "content": self.content,
            "timestamp": _iso(self.timestamp),
        }

    def __repr__(self):
        return f"<Reply {self.id} on Comment {self.comment_id}>"


class Notification(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    # like, comment, reply, share, subscription, mention, appointment
    type = db.Column(db.String(30), nullable=False)
    recipient = db.Column(db.String(120), nullable=False, index=True)
    actor = db.Column(db.String(120), nullable=True)
    actor_name = db.Column(db.String(160), nullable=True)
    post_id = db.Column(db.Integer, nullable=True)
    post_title = db.Column(db.String(200), nullable=True)
    comment_id = db.Column(db.Integer, nullable=True)
    appointment_id = db.Column(db.String(36), nullable=True)
    appointment_date = db.Column(db.String(20), nullable=True)
    appointment_time = db.Column(db.String(20), nullable=True)
    message = db.Column(db.String(500), nullable=False)
    link = db.Column(db.String(255), nullable=True)
    timestamp = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    is_read = db.Column(db.Boolean, default=False, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "recipient": self.recipient,
            "actor": self.actor,
            "actor_name": self.actor_name,
            "post_id": self.post_id,
            "post_title": self.post_title,
            "comment_id": self.comment_id,
            "appointment_id": self.appointment_id,
            "appointment_date": self.appointment_date,
            "appointment_time": self.appointment_time,
            "message": self.message,
            "link": self.link,
            "timestamp": _iso(self.timestamp),
            "read": self.is_read,
        }

    def __repr__(self):
        return f"<Notification {self.id} type {self.type} for {self.recipient}>"


class Subscription(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    subscriber_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    subscribed_to_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    timestamp = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    subscriber = db.relationship("User", foreign_keys=[subscriber_id])
    subscribed_to = db.relationship("User", foreign_keys=[subscribed_to_id])

    __table_args__ = (
        db.UniqueConstraint(
            "subscriber_id", "subscribed_to_id", name="uq_subscriber_subscribed_to"
        ),
        db.CheckConstraint(
            "subscriber_id != subscribed_to_id", name="ck_subscription_not_self"
        ),
    )

    def to_dict(self):
        return {
            "subscriber": self.subscriber.username,
            "subscribed_to": self.subscribed_to.username,
            "timestamp": _iso(self.timestamp),
        }

    def __repr__(self):
        return f"<Subscription {self.subscriber_id} -> {self.subscribed_to_id}>"


class Template(db.Model):
    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    # Engineers/Diploma, Creatives, Business, Academic
    category = db.Column(db.String(40), nullable=False)
    description = db.Column(db.Text, nullable=True)
    thumbnail = db.Column(db.String(255), nullable=True)
    preview_url = db.Column(db.String(255), nullable=True)
    is_premium = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    tags = db.Column(db.JSON, nullable=False, default=list)
    layout_type = db.Column(db.String(40), nullable=False, default="single-page")
    default_config = db.Column(db.JSON, nullable=False, default=dict)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "thumbnail": self.thumbnail,
            "preview_url": self.preview_url,
            "is_premium": self.is_premium,
            "tags": list(self.tags or []),
            "layout_type": self.layout_type,
            "default_config": dict(self.default_config or {}),
        }

    def __repr__(self):
        return f"<Template {self.id}>"


class Portfolio(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    template_id = db.Column(db.String(64), db.ForeignKey("template.id"), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(120), unique=True, nullable=False)
    headline = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)
    profile_picture = db.Column(db.String(255), nullable=True)
    contact_email = db.Column(db.String(120), nullable=True)
    theme = db.Column(db.JSON, nullable=False, default=dict)
    typography = db.Column(db.JSON, nullable=False, default=dict)
    layout = db.Column(db.JSON, nullable=False, default=dict)
    visible_sections = db.Column(db.JSON, nullable=False, default=dict)
    social_links = db.Column(db.JSON, nullable=False, default=dict)
    is_published = db.Column(db.Boolean, nullable=False, default=False)
    view_count = db.Column(db.Integer, nullable=False, default=0)
    like_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    published_at = db.Column(db.DateTime, nullable=True)

    template = db.relationship("Template")
    projects = db.relationship(
        "Project",
        backref="portfolio",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Project.sort_order",
    )
    skills = db.relationship(
        "Skill",
        backref="portfolio",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Skill.sort_order",
    )
    testimonials = db.relationship(
        "Testimonial",
        backref="portfolio",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Testimonial.sort_order",
    )
    sections = db.relationship(
        "PortfolioSection",
        backref="portfolio",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="PortfolioSection.sort_order",
    )
    appointments = db.relationship(
        "Appointment", backref="portfolio", lazy=True, cascade="all, delete-orphan"
    )

    def to_dict(self, include_content=False):
        data = {
            "id": self.id,
            "owner": self.owner.username,
            "owner_name": self.owner.display_name,
            "template_id": self.template_id,
            "category": self.template.category if self.template else None,
            "title": self.title,
            "slug": self.slug,
            "headline": self.headline,
            "description": self.description,
            "profile_picture": self.profile_picture,
            "contact_email": self.contact_email,
            "theme": dict(self.theme or {}),
            "typography": dict(self.typography or {}),
            "layout": dict(self.layout or {}),
            "visible_sections": dict(self.visible_sections or {}),
            "social_links": dict(self.social_links or {}),
            "is_published": self.is_published,
            "views": self.view_count,
            "likes": self.like_count,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "published_at": _iso(self.published_at),
        }
        if include_content:
            data["projects"] = [project.to_dict() for project in self.projects]
            data["skills"] = [skill.to_dict() for skill in self.skills]
            data["testimonials"] = [
                testimonial.to_dict()
                for testimonial in self.testimonials
                if testimonial.is_visible
            ]
            data["sections"] = [section.to_dict() for section in self.sections]
        return data

    def __repr__(self):
        return f"<Portfolio {self.slug}>"


class Project(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    portfolio_id = db.Column(db.Integer, db.ForeignKey("portfolio.id"), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    images = db.Column(db.JSON, nullable=False, default=list)
    tech_stack = db.Column(db.JSON, nullable=False, default=list)
    demo_url = db.Column(db.String(255), nullable=True)
    code_url = db.Column(db.String(255), nullable=True)
    featured = db.Column(db.Boolean, nullable=False, default=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    EDITABLE_FIELDS = (
        "title",
        "description",
        "images",
        "tech_stack",
        "demo_url",
        "code_url",
        "featured",
        "sort_order",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "portfolio_id": self.portfolio_id,
            "title": self.title,
            "description": self.description,
            "images": list(self.images or []),
            "tech_stack": list(self.tech_stack or []),
            "demo_url": self.demo_url,
            "code_url": self.code_url,
            "featured": self.featured,
            "sort_order": self.sort_order,
        }

    def __repr__(self):
        return f"<Project {self.title}>"


class Skill(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    portfolio_id = db.Column(db.Integer, db.ForeignKey("portfolio.id"), nullable=False)
    name = db.Column(db.String(80), nullable=False)
    # Frontend, Backend, Database, DevOps, Tools, Other
    category = db.Column(db.String(40), nullable=False, default="Other")
    percentage = db.Column(db.Integer, nullable=False, default=50)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    EDITABLE_FIELDS = ("name", "category", "percentage", "sort_order")

    @property
    def proficiency(self):
        """Proficiency on a 1-5 scale derived from the percentage."""
        return min(5, max(1, math.ceil((self.percentage or 0) / 20)))

    def to_dict(self):
        return {
            "id": self.id,
            "portfolio_id": self.portfolio_id,
            "name": self.name,
            "category": self.category,
            "percentage": self.percentage,
            "proficiency": self.proficiency,
            "sort_order": self.sort_order,
        }

    def __repr__(self):
        return f"<Skill {self.name} {self.percentage}%>"


class Testimonial(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    portfolio_id = db.Column(db.Integer, db.ForeignKey("portfolio.id"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    role = db.Column(db.String(120), nullable=True)
    company = db.Column(db.String(120), nullable=True)
    content = db.Column(db.Text, nullable=False)
    avatar = db.Column(db.String(255), nullable=True)
    rating = db.Column(db.Integer, nullable=False, default=5)
    is_visible = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    EDITABLE_FIELDS = (
        "name",
        "role",
        "company",
        "content",
        "avatar",
        "rating",
        "is_visible",
        "sort_order",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "portfolio_id": self.portfolio_id,
            "name": self.name,
            "role": self.role,
            "company": self.company,
            "content": self.content,
            "avatar": self.avatar,
            "rating": self.rating,
            "is_visible": self.is_visible,
            "sort_order": self.sort_order,
        }

    def __repr__(self):
        return f"<Testimonial {self.id} by {self.name}>"


class PortfolioSection(db.Model):
    __tablename__ = "portfolio_section"
    id = db.Column(db.Integer, primary_key=True)
    portfolio_id = db.Column(db.Integer, db.ForeignKey("portfolio.id"), nullable=False)
    # education, experience, publication, contact, custom
    kind = db.Column(db.String(20), nullable=False)
    title = db.Column(db.String(200), nullable=True)
    data = db.Column(db.JSON, nullable=False, default=dict)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "portfolio_id": self.portfolio_id,
            "kind": self.kind,
            "title": self.title,
            "data": dict(self.data or {}),
            "sort_order": self.sort_order,
        }

    def __repr__(self):
        return f"<PortfolioSection {self.id} {self.kind}>"


class Appointment(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    portfolio_id = db.Column(db.Integer, db.ForeignKey("portfolio.id"), nullable=False)
    # Identifier of the portfolio owner; blank on rows written before owners were recorded
    portfolio_owner_id = db.Column(db.String(120), nullable=False, default="")
    booked_by = db.Column(db.String(120), nullable=True)
    booker_name = db.Column(db.String(120), nullable=False)
    booker_email = db.Column(db.String(120), nullable=False)
    booker_phone = db.Column(db.String(40), nullable=True)
    booker_company = db.Column(db.String(120), nullable=True)
    booker_role = db.Column(db.String(120), nullable=True)
    date = db.Column(db.Date, nullable=False)
    time = db.Column(db.Time, nullable=False)
    duration = db.Column(db.Integer, nullable=False, default=30)
    reason = db.Column(db.Text, nullable=True)
    meeting_platform = db.Column(db.String(40), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="pending")
    meeting_link = db.Column(db.String(255), nullable=True)
    cancelled_by = db.Column(db.String(10), nullable=True)  # owner or booker
    created_at = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    updated_at = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    RECORD_FIELDS = (
        "portfolio_id",
        "portfolio_owner_id",
        "booked_by",
        "booker_name",
        "booker_email",
        "booker_phone",
        "booker_company",
        "booker_role",
        "duration",
        "reason",
        "meeting_platform",
        "status",
        "meeting_link",
        "cancelled_by",
    )

    def update_from_dict(self, data):
        """Copies a JSON appointment record onto this row."""
        for field in self.RECORD_FIELDS:
            if field in data:
                setattr(self, field, data[field])
        if data.get("date"):
            self.date = date.fromisoformat(data["date"])
        if data.get("time"):
            self.time = time.fromisoformat(data["time"])
        if data.get("created_at"):
            self.created_at = datetime.fromisoformat(data["created_at"])
        if data.get("updated_at"):
            self.updated_at = datetime.fromisoformat(data["updated_at"])
        return self

    @classmethod
    def from_dict(cls, data):
        return cls(id=data["id"]).update_from_dict(data)

    def to_dict(self):
        return {
            "id": self.id,
            "portfolio_id": self.portfolio_id,
            "portfolio_owner_id": self.portfolio_owner_id or "",
            "booked_by": self.booked_by,
            "booker_name": self.booker_name,
            "booker_email": self.booker_email,
            "booker_phone": self.booker_phone,
            "booker_company": self.booker_company,
            "booker_role": self.booker_role,
            "date": self.date.isoformat() if self.date else None,
            "time": self.time.strftime("%H:%M") if self.time else None,
            "duration": self.duration,
            "reason": self.reason,
            "meeting_platform": self.meeting_platform,
            "status": self.status,
            "meeting_link": self.meeting_link,
            "cancelled_by": self.cancelled_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Appointment {self.id} {self.status}>"
