from flask import Blueprint, jsonify, g

from routes.serializers import subscription_to_dict
from services import subscriptions
from utils.auth_context import login_required

subscriptions_bp = Blueprint("subscriptions", __name__, url_prefix="/subscriptions")


@subscriptions_bp.get("/me")
@login_required
def my_subscription():
    sub = subscriptions.current_for(g.user.id)
    return jsonify(subscription=subscription_to_dict(sub)), 200
