from models import db, ChatMessage

# Roles stored in the transcript; "model" lines are replies from Tag Mage
USER = "user"
MODEL = "model"


def save_message(user_id, project_id, role, content, channel="chat", actions=None):
    """Append a line to a project's transcript."""
    msg = ChatMessage(
        user_id=user_id,
        project_id=project_id,
        role=role,
        content=content,
        channel=channel,
        actions=actions,
    )
    db.session.add(msg)
    db.session.commit()
    return msg


def get_history(user_id, project_id, channel="chat", limit=None):
    """Transcript lines oldest first; `limit` keeps the most recent ones."""
    query = ChatMessage.query.filter_by(user_id=user_id, project_id=project_id, channel=channel)
    if limit:
        rows = query.order_by(ChatMessage.id.desc()).limit(limit).all()
        return list(reversed(rows))
    return query.order_by(ChatMessage.id.asc()).all()


def to_llm_messages(history):
    return [
        {"role": "assistant" if m.role == MODEL else "user", "content": m.content}
        for m in history
    ]


def get_chat_context(user_id, project_id, channel="chat"):
    """Full conversation rendered as plain text."""
    lines = []
    for m in get_history(user_id, project_id, channel):
        speaker = "Assistant" if m.role == MODEL else "User"
        lines.append(f"{speaker}: {m.content}")
    return "\n".join(lines)


def clear_history(project_id):
    ChatMessage.query.filter_by(project_id=project_id).delete()
    db.session.commit()
