from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

db = SQLAlchemy()

# Platform columns that count as "tracking configured" on a project
PLATFORM_ID_FIELDS = [
    "ga4_measurement_id",
    "google_ads_id",
    "google_ads_customer_id",
    "meta_pixel_id",
    "tiktok_pixel_id",
    "linkedin_insight_tag_id",
]

# Fields a client may change through the projects API
EDITABLE_FIELDS = [
    "name",
    "url",
    "client_logo_url",
    "gtm_id",
    "ga4_measurement_id",
    "google_ads_id",
    "google_ads_label",
    "google_ads_customer_id",
    "meta_pixel_id",
    "tiktok_pixel_id",
    "linkedin_insight_tag_id",
    "business_type",
    "selected_platforms",
]


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    api_token = db.Column(db.String(255), unique=True, nullable=False)
    plan = db.Column(db.String(50), default='free') # free, pro
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    projects = db.relationship('Project', backref='owner', lazy=True, cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User {self.email}>"


class Project(db.Model):
    __tablename__ = 'projects'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    url = db.Column(db.String(2048), nullable=False)
    client_logo_url = db.Column(db.String(2048), nullable=True)

    # Client-side tags
    gtm_id = db.Column(db.String(50), nullable=True) # public ID, e.g. GTM-ABC123
    ga4_measurement_id = db.Column(db.String(50), nullable=True)
    google_ads_id = db.Column(db.String(50), nullable=True)
    google_ads_label = db.Column(db.String(100), nullable=True)
    google_ads_customer_id = db.Column(db.String(20), nullable=True)
    meta_pixel_id = db.Column(db.String(50), nullable=True)
    tiktok_pixel_id = db.Column(db.String(50), nullable=True)
    linkedin_insight_tag_id = db.Column(db.String(50), nullable=True)

    # Server-side (Stape) container
    stape_container_id = db.Column(db.String(100), nullable=True)
    stape_domain = db.Column(db.String(255), nullable=True)
    stape_configured = db.Column(db.Boolean, default=False)

    # Analysis results
    business_type = db.Column(db.String(255), nullable=True)
    conversion_events = db.Column(db.JSON, default=list)
    detected_platforms = db.Column(db.JSON, default=list)
    selected_platforms = db.Column(db.JSON, default=list)
    existing_tags = db.Column(db.JSON, default=list)
    site_analysis_data = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def status(self):
        """'attention' without GTM, 'warning' with GTM but no platform, else 'ok'."""
        if not self.gtm_id:
            return 'attention'
        if not any(getattr(self, field) for field in PLATFORM_ID_FIELDS):
            return 'warning'
        return 'ok'

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "client_logo_url": self.client_logo_url,
            "gtm_id": self.gtm_id,
            "ga4_measurement_id": self.ga4_measurement_id,
            "google_ads_id": self.google_ads_id,
            "google_ads_label": self.google_ads_label,
            "google_ads_customer_id": self.google_ads_customer_id,
            "meta_pixel_id": self.meta_pixel_id,
            "tiktok_pixel_id": self.tiktok_pixel_id,
            "linkedin_insight_tag_id": self.linkedin_insight_tag_id,
            "stape_container_id": self.stape_container_id,
            "stape_domain": self.stape_domain,
            "stape_configured": bool(self.stape_configured),
            "business_type": self.business_type,
            "conversion_events": self.conversion_events or [],
            "detected_platforms": self.detected_platforms or [],
            "selected_platforms": self.selected_platforms or [],
            "existing_tags": self.existing_tags or [],
            "site_analysis_data": self.site_analysis_data,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Project {self.name}>"


class ChatMessage(db.Model):
    __tablename__ = 'chat_messages'

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id'), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    channel = db.Column(db.String(20), default='chat') # chat, wizard
    role = db.Column(db.String(20), nullable=False) # user, model
    content = db.Column(db.Text, nullable=False)
    actions = db.Column(db.JSON, nullable=True) # buttons offered with an AI message
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            "role": self.role,
            "content": self.content,
            "actions": self.actions or [],
            "timestamp": self.created_at.isoformat() if self.created_at else None,
        }


class WizardSession(db.Model):
    __tablename__ = 'wizard_sessions'

    project_id = db.Column(db.Integer, db.ForeignKey('projects.id'), primary_key=True)
    state = db.Column(db.String(50), default='start')
    offered_actions = db.Column(db.JSON, default=list) # [{id, label, variant}] valid in this state
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
