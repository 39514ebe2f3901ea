from flask import Blueprint
from flask_login import login_required, current_user
from forms import ProfileForm, MessageForm
from services import ChatService, ReportingService, UserService
from utils.permissions import capability_required, feature_required
from utils.responses import json_success, json_error, form_errors, form_values
import logging

logger = logging.getLogger(__name__)

shared_bp = Blueprint('shared', __name__)


# Profile

@shared_bp.route('/profile')
@login_required
def profile():
    return json_success(
        user=current_user.to_dict(),
        stats=ReportingService().get_profile_stats(current_user),
    )


@shared_bp.route('/profile', methods=['PUT'])
@login_required
def update_profile():
    form = ProfileForm()
    if not form.validate_on_submit():
        return form_errors(form)

    success, error, user = UserService().update_profile(current_user, form_values(form))
    if not success:
        return json_error(error, 400)
    return json_success(user=user.to_dict())


# Chat

@shared_bp.route('/chat/contacts')
@login_required
@capability_required('chat.use')
@feature_required('chat')
def chat_contacts():
    contacts = ChatService().contacts_for(current_user)
    return json_success(contacts=[contact.to_dict() for contact in contacts])


@shared_bp.route('/chat/<int:other_id>')
@login_required
@capability_required('chat.use')
@feature_required('chat')
def conversation(other_id):
    """Messages with one contact, oldest first"""
    chat_service = ChatService()
    if not chat_service.can_message(current_user, other_id):
        return json_error('Contact not found', 404, error='NOT_FOUND')
    messages = chat_service.get_conversation(current_user.id, other_id)
    return json_success(messages=[message.to_dict() for message in messages])


@shared_bp.route('/chat/<int:other_id>', methods=['POST'])
@login_required
@capability_required('chat.use')
@feature_required('chat')
def send_message(other_id):
    chat_service = ChatService()
    if not chat_service.can_message(current_user, other_id):
        return json_error('Contact not found', 404, error='NOT_FOUND')
    form = MessageForm()
    if not form.validate_on_submit():
        return form_errors(form)

    success, error, message = chat_service.add_message(current_user, other_id, form.text.data)
    if not success:
        return json_error(error, 400)
    return json_success(201, message=message.to_dict())
