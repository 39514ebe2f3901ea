from flask import request
from flask_wtf import FlaskForm
from werkzeug.datastructures import ImmutableMultiDict
from wtforms import StringField, PasswordField, BooleanField, FloatField, IntegerField, DateField, TextAreaField
from wtforms.validators import DataRequired, Email, Length, Optional, NumberRange, AnyOf, Regexp

from models import (
    MovementStatus, TripType, TripStatus, SubManagerType, PaymentType, RENT_COMPANY_OPTIONS
)

MOVEMENT_VALUES = [status.value for status in MovementStatus]
TRIP_TYPE_VALUES = [trip_type.value for trip_type in TripType]
TRIP_STATUS_VALUES = [status.value for status in TripStatus]
SUB_MANAGER_TYPE_VALUES = [sub_type.value for sub_type in SubManagerType]
MONTH_REGEX = r'^\d{4}-(0[1-9]|1[0-2])$'


def _form_value(value):
    """JSON scalar as the string a browser form would have posted"""
    if value is None:
        return ''
    if value is True:
        return 'y'
    if value is False:
        return 'false'
    return str(value)


class APIForm(FlaskForm):
    """Form bound to a JSON request body; the API blueprints carry no CSRF token"""

    class Meta:
        csrf = False

        def wrap_formdata(self, form, formdata):
            formdata = super().wrap_formdata(form, formdata)
            if formdata is not None and request.is_json:
                return ImmutableMultiDict([
                    (key, _form_value(value)) for key, value in formdata.items(multi=True)
                    if not isinstance(value, dict)
                ])
            return formdata


class LoginForm(APIForm):
    identifier = StringField('Email or Phone', validators=[DataRequired(), Length(max=120)])
    password = PasswordField('Password', validators=[DataRequired()])


# Users

class UserCreateForm(APIForm):
    name = StringField('Name', validators=[DataRequired(), Length(min=2, max=100)])
    phone = StringField('Phone', validators=[DataRequired(), Length(min=6, max=20)])
    email = StringField('Email', validators=[Optional(), Email(), Length(max=120)])
    password = PasswordField('Password', validators=[DataRequired(), Length(min=6)])
    address = TextAreaField('Address', validators=[Optional()])

    # Driver details
    nid_number = StringField('NID Number', validators=[Optional(), Length(max=30)])
    license_number = StringField('License Number', validators=[Optional(), Length(max=50)])

    # Sub-manager details
    role = StringField('Role', validators=[Optional(), AnyOf(['sub_manager', 'ujala_manager'])])
    sub_manager_type = StringField('Sub-manager Type', validators=[Optional(), AnyOf(SUB_MANAGER_TYPE_VALUES)])


class UserUpdateForm(APIForm):
    name = StringField('Name', validators=[Optional(), Length(min=2, max=100)])
    phone = StringField('Phone', validators=[Optional(), Length(min=6, max=20)])
    email = StringField('Email', validators=[Optional(), Email(), Length(max=120)])
    password = PasswordField('Password', validators=[Optional(), Length(min=6)])
    address = TextAreaField('Address', validators=[Optional()])
    nid_number = StringField('NID Number', validators=[Optional(), Length(max=30)])
    license_number = StringField('License Number', validators=[Optional(), Length(max=50)])
    sub_manager_type = StringField('Sub-manager Type', validators=[Optional(), AnyOf(SUB_MANAGER_TYPE_VALUES)])


class UserStatusForm(APIForm):
    is_active = BooleanField('Active')


class ProfileForm(APIForm):
    name = StringField('Name', validators=[Optional(), Length(min=2, max=100)])
    email = StringField('Email', validators=[Optional(), Email(), Length(max=120)])
    address = TextAreaField('Address', validators=[Optional()])
    bio = TextAreaField('Bio', validators=[Optional(), Length(max=500)])
    photo_url = StringField('Photo', validators=[Optional(), Length(max=255)])
    cover_photo_url = StringField('Cover Photo', validators=[Optional(), Length(max=255)])


# Fleet

class VehicleForm(APIForm):
    vehicle_number = StringField('Vehicle Number', validators=[DataRequired(), Length(max=30)])
    owner_name = StringField('Owner Name', validators=[Optional(), Length(max=100)])
    driver_id = IntegerField('Driver', validators=[Optional()])
    tax_token_expiry = DateField('Tax Token Expiry', validators=[Optional()])
    fitness_expiry = DateField('Fitness Expiry', validators=[Optional()])
    road_permit_expiry = DateField('Road Permit Expiry', validators=[Optional()])


class VehicleUpdateForm(VehicleForm):
    vehicle_number = StringField('Vehicle Number', validators=[Optional(), Length(max=30)])
    is_active = BooleanField('Active')


# Trips

class TripForm(APIForm):
    vehicle_id = IntegerField('Vehicle', validators=[DataRequired()])
    movement_status = StringField('Movement', validators=[Optional(), AnyOf(MOVEMENT_VALUES)])
    trip_type = StringField('Trip Type', validators=[Optional(), AnyOf(TRIP_TYPE_VALUES)])
    rent_company = StringField('Rent Company', validators=[Optional(), Length(max=100)])
    custom_company = StringField('Company Name', validators=[Optional(), Length(max=100)])
    loading_point = StringField('Loading Point', validators=[DataRequired(), Length(max=200)])
    unloading_point = StringField('Unloading Point', validators=[DataRequired(), Length(max=200)])
    date = DateField('Trip Date', validators=[Optional()])
    party_fare = FloatField('Party Fare', validators=[Optional(), NumberRange(min=0)])
    package_amount = FloatField('Package Amount', validators=[Optional(), NumberRange(min=0)])
    party_advance_amount = FloatField('Party Advance', validators=[Optional(), NumberRange(min=0)])
    company_advance_amount = FloatField('Company Advance', validators=[Optional(), NumberRange(min=0)])


class TripUpdateForm(TripForm):
    vehicle_id = IntegerField('Vehicle', validators=[Optional()])
    loading_point = StringField('Loading Point', validators=[Optional(), Length(max=200)])
    unloading_point = StringField('Unloading Point', validators=[Optional(), Length(max=200)])
    status = StringField('Status', validators=[Optional(), AnyOf(TRIP_STATUS_VALUES)])


class DirectExportForm(TripForm):
    vehicle_id = IntegerField('Vehicle', validators=[Optional()])


class TripStatusForm(APIForm):
    status = StringField('Status', validators=[DataRequired(), AnyOf(TRIP_STATUS_VALUES)])


# Money

class ManualPaymentForm(APIForm):
    payment_type = StringField('Payment Type', validators=[Optional(), AnyOf(list(PaymentType.MANUAL_CHOICES))])
    rent_company = StringField('Payer', validators=[Optional(), AnyOf(list(RENT_COMPANY_OPTIONS))])
    custom_company = StringField('Company Name', validators=[Optional(), Length(max=100)])
    vehicle_id = IntegerField('Vehicle', validators=[Optional()])
    amount = FloatField('Amount', validators=[DataRequired(), NumberRange(min=0.01)])
    date = DateField('Payment Date', validators=[Optional()])
    notes = TextAreaField('Notes', validators=[Optional(), Length(max=500)])


class SalaryAdvanceForm(APIForm):
    driver_id = IntegerField('Driver', validators=[DataRequired()])
    month = StringField('Month', validators=[DataRequired(), Regexp(MONTH_REGEX, message='Month must be YYYY-MM')])
    amount = FloatField('Amount', validators=[DataRequired(), NumberRange(min=0.01)])
    notes = StringField('Notes', validators=[Optional(), Length(max=200)])


class SalarySettleForm(APIForm):
    driver_id = IntegerField('Driver', validators=[DataRequired()])
    month = StringField('Month', validators=[DataRequired(), Regexp(MONTH_REGEX, message='Month must be YYYY-MM')])


# Requests

class TripRequestForm(APIForm):
    vehicle_id = IntegerField('Vehicle', validators=[DataRequired()])
    loading_point = StringField('Loading Point', validators=[DataRequired(), Length(max=200)])
    unloading_point = StringField('Unloading Point', validators=[DataRequired(), Length(max=200)])
    rent_company = StringField('Rent Company', validators=[Optional(), AnyOf(list(RENT_COMPANY_OPTIONS))])
    custom_company = StringField('Company Name', validators=[Optional(), Length(max=100)])
    estimated_fare = FloatField('Estimated Fare', validators=[Optional(), NumberRange(min=0)])


class PaymentRequestForm(APIForm):
    vehicle_id = IntegerField('Vehicle', validators=[Optional()])
    rent_company = StringField('Rent Company', validators=[Optional(), AnyOf(list(RENT_COMPANY_OPTIONS))])
    custom_company = StringField('Company Name', validators=[Optional(), Length(max=100)])
    amount = FloatField('Amount', validators=[DataRequired(), NumberRange(min=0.01)])
    notes = TextAreaField('Notes', validators=[Optional(), Length(max=500)])


class ApproveTripRequestForm(APIForm):
    trip_type = StringField('Trip Type', validators=[Optional(), AnyOf(TRIP_TYPE_VALUES)])
    package_amount = FloatField('Package Amount', validators=[Optional(), NumberRange(min=0)])
    party_advance_amount = FloatField('Party Advance', validators=[Optional(), NumberRange(min=0)])
    company_advance_amount = FloatField('Company Advance', validators=[Optional(), NumberRange(min=0)])


class RejectRequestForm(APIForm):
    reason = TextAreaField('Reason', validators=[Optional(), Length(max=500)])


# Chat and settings

class MessageForm(APIForm):
    text = TextAreaField('Message', validators=[DataRequired(), Length(max=2000)])


class SettingsForm(APIForm):
    app_name = StringField('App Name', validators=[Optional(), Length(min=1, max=100)])
    app_icon = StringField('App Icon', validators=[Optional(), Length(max=255)])
    feature_chat = BooleanField('Chat')
    feature_reports = BooleanField('Reports')
    feature_payments = BooleanField('Payments')
