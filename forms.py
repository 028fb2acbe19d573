from flask_wtf import FlaskForm
from wtforms import Form, StringField, BooleanField, SelectField, SelectMultipleField, FloatField, IntegerField, TextAreaField, FormField, Field
from wtforms.validators import InputRequired, Length, Optional, NumberRange
from wtforms.widgets import TextInput
from models import (
    JobRequestType, ServiceType, ContractUnit, SalaryFrequency, RejectionReason, InterviewMode,
    EmploymentStatus, TerminationReason, RatingTag
)
from services.exceptions import ValidationError
from utils.payloads import flatten_payload, flatten_form_errors, parse_datetime


def enum_choices(enum_class, members=None):
    return [(member.value, member.value) for member in (members or enum_class)]


class JSONBooleanField(BooleanField):
    """Boolean that stays None when the key is absent from the JSON body"""

    def process_data(self, value):
        self.data = None if value is None else bool(value)

    def process_formdata(self, valuelist):
        # Only JSON true/false; strings like "no" or numbers are rejected
        if valuelist:
            if valuelist[0] not in ('true', 'false'):
                self.data = None
                raise ValueError(self.gettext('Not a valid boolean value.'))
            self.data = valuelist[0] == 'true'


class ISODateTimeField(Field):
    """ISO-8601 timestamp, stored as naive local time"""
    widget = TextInput()

    def _value(self):
        return self.data.isoformat() if self.data else ''

    def process_formdata(self, valuelist):
        if valuelist:
            try:
                self.data = parse_datetime(valuelist[0])
            except ValueError:
                self.data = None
                raise ValueError(self.gettext('Not a valid datetime value.'))


class JSONForm(FlaskForm):
    """Form bound to a JSON body instead of request.form"""

    class Meta:
        csrf = False

    @classmethod
    def from_json(cls, payload):
        return cls(formdata=flatten_payload(payload))


def validate_payload(form_class, payload):
    """
    Validate a JSON object against a form.

    Returns:
        dict: the form's data, nested forms as nested dicts

    Raises:
        ValidationError: with every field error as ``[{field, message}]``
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError('Request body must be a JSON object')

    form = form_class.from_json(payload)
    if not form.validate():
        raise ValidationError('Validation failed', errors=flatten_form_errors(form.errors))
    return form.data


# Job requests

class JobDetailsForm(Form):
    service_type = SelectField('Service Type', choices=enum_choices(ServiceType), validators=[InputRequired()])
    vehicle_type = StringField('Vehicle Type', validators=[InputRequired(), Length(max=100)])
    contract_duration = IntegerField('Contract Duration', validators=[InputRequired(), NumberRange(min=1)])
    contract_unit = SelectField('Contract Unit', choices=enum_choices(ContractUnit), validators=[InputRequired()])
    accommodation = JSONBooleanField('Accommodation', default=False)
    health_insurance = JSONBooleanField('Health Insurance', default=False)
    description = TextAreaField('Description', validators=[Optional(), Length(max=2000)])


class SalaryForm(Form):
    amount = FloatField('Amount', validators=[InputRequired(), NumberRange(min=0)])
    currency = StringField('Currency', default='INR', validators=[Optional(), Length(max=10)])
    frequency = SelectField('Frequency', choices=enum_choices(SalaryFrequency), validators=[InputRequired()])


class CreateJobRequestForm(JSONForm):
    driver_id = StringField('Driver', validators=[InputRequired(), Length(max=64)])
    type = SelectField('Type', choices=enum_choices(JobRequestType), default=JobRequestType.DIRECT_OFFER.value,
                       validators=[Optional()])
    job_details = FormField(JobDetailsForm)
    offered_salary = FormField(SalaryForm)
    expires_at = ISODateTimeField('Expires At', validators=[Optional()])
    proposed_start_date = ISODateTimeField('Proposed Start Date', validators=[Optional()])
    company_notes = TextAreaField('Company Notes', validators=[Optional(), Length(max=1000)])


class CounterOfferForm(Form):
    salary = FloatField('Salary', validators=[Optional(), NumberRange(min=0)])
    start_date = ISODateTimeField('Start Date', validators=[Optional()])
    notes = TextAreaField('Notes', validators=[Optional(), Length(max=1000)])


class RejectionForm(Form):
    reason = SelectField('Reason', choices=enum_choices(RejectionReason), validators=[Optional()])
    details = TextAreaField('Details', validators=[Optional(), Length(max=1000)])


class RespondJobRequestForm(JSONForm):
    action = SelectField('Action', choices=[('accept', 'Accept'), ('reject', 'Reject'), ('counter', 'Counter')],
                         validators=[InputRequired()])
    message = TextAreaField('Message', validators=[Optional(), Length(max=1000)])
    dl_consent_given = JSONBooleanField('Driving Licence Consent')
    counter_offer = FormField(CounterOfferForm)
    rejection = FormField(RejectionForm)

    def validate(self, extra_validators=None):
        valid = super().validate(extra_validators)
        if self.action.data == 'reject' and not self.rejection.reason.data:
            self.rejection.reason.errors.append('Rejection reason is required')
            return False
        return valid


class WithdrawJobRequestForm(JSONForm):
    reason = StringField('Reason', validators=[Optional(), Length(max=255)])


class ScheduleInterviewForm(JSONForm):
    scheduled_at = ISODateTimeField('Scheduled At', validators=[InputRequired()])
    location = StringField('Location', validators=[Optional(), Length(max=255)])
    mode = SelectField('Mode', choices=enum_choices(InterviewMode), default=InterviewMode.IN_PERSON.value,
                       validators=[Optional()])
    notes = TextAreaField('Notes', validators=[Optional(), Length(max=1000)])


# Employments

class EmploymentSalaryForm(Form):
    amount = FloatField('Amount', validators=[Optional(), NumberRange(min=0)])
    currency = StringField('Currency', validators=[Optional(), Length(max=10)])
    frequency = SelectField('Frequency', choices=enum_choices(SalaryFrequency), validators=[Optional()])


class UpdateEmploymentForm(JSONForm):
    status = SelectField('Status', validators=[Optional()], choices=enum_choices(
        EmploymentStatus, [EmploymentStatus.ACTIVE, EmploymentStatus.ON_LEAVE, EmploymentStatus.SUSPENDED]))
    description = TextAreaField('Description', validators=[Optional(), Length(max=2000)])
    salary = FormField(EmploymentSalaryForm)


class AssignVehicleForm(JSONForm):
    vehicle_id = StringField('Vehicle', validators=[InputRequired(), Length(max=64)])
    notes = TextAreaField('Notes', validators=[Optional(), Length(max=1000)])


class UnassignVehicleForm(JSONForm):
    reason = StringField('Reason', validators=[Optional(), Length(max=255)])


class TerminateEmploymentForm(JSONForm):
    reason = SelectField('Reason', choices=enum_choices(TerminationReason), validators=[InputRequired()])
    details = TextAreaField('Details', validators=[Optional(), Length(max=1000)])


class ResignEmploymentForm(JSONForm):
    reason = SelectField('Reason', choices=enum_choices(TerminationReason), validators=[Optional()])
    details = TextAreaField('Details', validators=[Optional(), Length(max=1000)])


class AvailabilityWindowForm(JSONForm):
    start_date_time = ISODateTimeField('Start', validators=[Optional()])
    end_date_time = ISODateTimeField('End', validators=[Optional()])


# Ratings

class CategoryRatingsForm(Form):
    safety = IntegerField('Safety', validators=[Optional(), NumberRange(min=1, max=5)])
    punctuality = IntegerField('Punctuality', validators=[Optional(), NumberRange(min=1, max=5)])
    professionalism = IntegerField('Professionalism', validators=[Optional(), NumberRange(min=1, max=5)])
    vehicle_care = IntegerField('Vehicle Care', validators=[Optional(), NumberRange(min=1, max=5)])
    communication = IntegerField('Communication', validators=[Optional(), NumberRange(min=1, max=5)])


class ReviewForm(Form):
    title = StringField('Title', validators=[Optional(), Length(max=100)])
    content = TextAreaField('Content', validators=[Optional(), Length(max=2000)])


class RatingContextForm(Form):
    employment_duration = IntegerField('Employment Duration', validators=[Optional(), NumberRange(min=0)])
    vehicle_type = StringField('Vehicle Type', validators=[Optional(), Length(max=100)])
    route_type = StringField('Route Type', validators=[Optional(), Length(max=100)])


class CreateRatingForm(JSONForm):
    driver_id = StringField('Driver', validators=[InputRequired(), Length(max=64)])
    employment_id = IntegerField('Employment', validators=[Optional()])
    overall_rating = IntegerField('Overall Rating', validators=[InputRequired(), NumberRange(min=1, max=5)])
    category_ratings = FormField(CategoryRatingsForm)
    review = FormField(ReviewForm)
    tags = SelectMultipleField('Tags', choices=enum_choices(RatingTag), validators=[Optional()])
    would_rehire = JSONBooleanField('Would Rehire')
    context = FormField(RatingContextForm)
    is_public = JSONBooleanField('Public', default=True)


class UpdateRatingForm(JSONForm):
    overall_rating = IntegerField('Overall Rating', validators=[Optional(), NumberRange(min=1, max=5)])
    category_ratings = FormField(CategoryRatingsForm)
    review = FormField(ReviewForm)
    tags = SelectMultipleField('Tags', choices=enum_choices(RatingTag), validators=[Optional()])
    would_rehire = JSONBooleanField('Would Rehire')


class RatingResponseForm(JSONForm):
    content = TextAreaField('Response', validators=[InputRequired(), Length(max=1000)])
