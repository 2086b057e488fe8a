"""
LLM-backed agreement analysis, vehicle recommendations and text helpers.

Both providers speak the OpenAI chat-completions protocol, so a single
client class wraps ``openai.OpenAI`` pointed at the provider's base URL:
DeepSeek for analysis, recommendations and Arabic text correction,
Perplexity for transliteration and the quick status check.
"""

import json
import logging
import re
from datetime import date

from flask import current_app
from openai import OpenAI, OpenAIError

from .errors import ExternalServiceError, NotFound, ValidationFailed
from .models import (AIAnalysis, AIRecommendation, Agreement, Customer, PaymentStatus, Vehicle,
                     VehicleStatus, db, utcnow)
from .schemas import (AgreementAnalysisData, AnalysisRequest, ArabicTextRequest,
                      RecommendationRequest, validate)

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.85
JSON_OBJECT = re.compile(r'\{[\s\S]*\}')

ANALYSIS_PROMPTS = {
    'status_recommendation': (
        "You are a rental agreement analysis specialist. Based on the agreement data provided, "
        "recommend the optimal status for this agreement. Consider the payment history, rental "
        "duration, and current status. Today's date is {today}. Return a JSON object with fields: "
        "recommendedStatus (string), confidence (number 0-1), reasoning (string), and "
        "actionItems (array of strings)."),
    'payment_prediction': (
        "You are a financial analyst specializing in rental payment predictions. Analyze the "
        "customer's payment history and predict the likelihood of on-time payments for the "
        "remaining term of this agreement. Consider payment patterns, delays, and customer "
        "history. Today's date is {today}. Return a JSON object with fields: paymentRiskLevel "
        "(string: 'low', 'medium', 'high'), onTimePaymentProbability (number 0-1), reasoning "
        "(string), and recommendedActions (array of strings)."),
    'risk_assessment': (
        "You are a risk assessment specialist for vehicle rentals. Evaluate the overall risk "
        "level of this agreement based on customer profile, payment history, vehicle details, "
        "and rental terms. Today's date is {today}. Return a JSON object with fields: "
        "overallRiskScore (number 0-100), riskLevel (string: 'low', 'moderate', 'high', "
        "'critical'), keyRiskFactors (array of strings), and mitigationRecommendations "
        "(array of strings)."),
    'vehicle_recommendation': (
        "You are a vehicle matching specialist. Based on the customer's profile and rental "
        "history, recommend the most suitable vehicles from the available fleet. Today's date "
        "is {today}. Return a JSON object with fields: recommendedVehicles (array of vehicle "
        "IDs), reasoningPerVehicle (object mapping vehicle ID to reasoning string), and "
        "customerPreferenceSummary (string)."),
    'agreement_health': (
        "You are a rental agreement health analyst. Evaluate the overall health and compliance "
        "of this agreement. Check for any missing information, potential legal issues, or "
        "contractual anomalies. Today's date is {today}. Return a JSON object with fields: "
        "healthScore (number 0-100), compliance (boolean), issues (array of strings), and "
        "recommendations (array of strings)."),
}

# (response field, scale) used to turn a parsed response into a 0-1 confidence
CONFIDENCE_FIELDS = {
    'status_recommendation': ('confidence', 1),
    'payment_prediction': ('onTimePaymentProbability', 1),
    'risk_assessment': ('overallRiskScore', 100),
    'agreement_health': ('healthScore', 100),
}

TRANSLITERATION_PROMPT = (
    "You are a name transliterator expert. Convert Arabic and other non-Latin script names and "
    "text to their English representation using standard romanization. Only return the "
    "romanized text, nothing else. Do not add any explanations or notes. Examples: "
    "عبد الله -> Abdullah, محمد -> Mohammed, فاطمة -> Fatima, عبد الرحمن -> Abdul Rahman")

STATUS_CHECK_PROMPT = (
    "You are an agreement status analyzer. Based on the data provided, determine the "
    "appropriate status for the agreement and provide a brief explanation. Your response should "
    "be in this JSON format only: {\"recommendedStatus\": \"status\", \"confidence\": number, "
    "\"explanation\": \"explanation\", \"riskLevel\": \"low|medium|high\", "
    "\"actionItems\": [\"action1\", \"action2\"]}. Do not include any other text.")

RECOMMENDATION_PROMPT = (
    "You are a vehicle recommendation specialist. Based on the customer's profile, rental "
    "history, and preferences, recommend the most suitable vehicles from the available fleet. "
    "Return a JSON object with the following structure: { recommendations: [{ vehicleId: "
    "string, score: number, reasoning: string }], customerInsights: string }")

ARABIC_TEXT_PROMPT = (
    "You are an expert in Arabic text rendering and font encoding. Your task is to identify and "
    "correct any encoding or rendering issues in Arabic text that would cause problems in PDF "
    "documents. Preserve all original meaning, just fix the encoding issues. Only return the "
    "corrected text without any explanations.")


class LLMClient:
    """Thin wrapper around an OpenAI-compatible chat endpoint."""

    def __init__(self, api_key: str, base_url: str, model: str, timeout: float = 30.0):
        if not api_key:
            raise ExternalServiceError("LLM API key is not configured")
        self.client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout)
        self.model = model
        logger.debug("LLM client initialised: base_url=%s model=%s", base_url, model)

    def chat_completion(self, messages, temperature: float = 0.2, max_tokens: int = 1500) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except OpenAIError as exc:
            logger.error("LLM request to %s failed: %s", self.model, exc)
            raise ExternalServiceError(f"LLM request failed: {exc}") from exc
        if not response.choices or response.choices[0].message is None:
            raise ExternalServiceError("Invalid response from LLM service")
        return (response.choices[0].message.content or '').strip()


def get_llm_client(provider: str) -> LLMClient:
    """Client for ``'deepseek'`` or ``'perplexity'`` built from app config."""
    prefix = provider.upper()
    config = current_app.config
    return LLMClient(
        api_key=config.get(f'{prefix}_API_KEY'),
        base_url=config.get(f'{prefix}_BASE_URL'),
        model=config.get(f'{prefix}_MODEL'),
        timeout=config.get('LLM_TIMEOUT', 30.0),
    )


def parse_json_response(text: str) -> dict:
    """Parse a JSON object, also when the model wrapped it in prose or fences."""
    try:
        parsed = json.loads(text)
    except ValueError:
        match = JSON_OBJECT.search(text or '')
        if match is None:
            raise ValueError("Could not parse analysis result") from None
        try:
            parsed = json.loads(match.group(0))
        except ValueError:
            raise ValueError("Could not parse analysis result") from None
    if not isinstance(parsed, dict):
        raise ValueError("Analysis result is not a JSON object")
    return parsed


def confidence_from_response(analysis_type: str, text: str) -> float:
    field, scale = CONFIDENCE_FIELDS.get(analysis_type, (None, 1))
    if field is None:
        return DEFAULT_CONFIDENCE
    try:
        parsed = parse_json_response(text)
    except ValueError:
        logger.info("Analysis response is not JSON, using default confidence")
        return DEFAULT_CONFIDENCE
    value = parsed.get(field)
    if not isinstance(value, (int, float)) or isinstance(value, bool) or not value:
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, value / scale))


# ---------------------------------------------------------------------------
# Agreement analysis

def analysis_context(agreement: Agreement, analysis_type: str, content=None,
                     today: date = None) -> dict:
    today = today or date.today()
    agreement_data = agreement.to_dict()
    agreement_data['customer'] = agreement.customer.to_dict() if agreement.customer else None
    agreement_data['vehicle'] = agreement.vehicle.to_dict() if agreement.vehicle else None

    payment_history = None
    if analysis_type in ('payment_prediction', 'risk_assessment'):
        payment_history = [p.to_dict() for p in agreement.payments]

    fleet = None
    if analysis_type == 'vehicle_recommendation':
        fleet = [v.to_dict() for v in Vehicle.query.filter_by(status=VehicleStatus.AVAILABLE).all()]

    customer_history = None
    if agreement.customer_id:
        customer_history = [
            {'id': a.id, 'start_date': a.start_date.isoformat(),
             'end_date': a.end_date.isoformat() if a.end_date else None, 'status': a.status}
            for a in Agreement.query.filter(Agreement.customer_id == agreement.customer_id,
                                            Agreement.id != agreement.id).all()
        ]

    return {
        'agreement': agreement_data,
        'analysisType': analysis_type,
        'additionalContent': content,
        'paymentHistory': payment_history,
        'fleetData': fleet,
        'customerHistory': customer_history,
        'currentDate': today.isoformat(),
    }


def run_agreement_analysis(data: dict, client: LLMClient = None) -> AIAnalysis:
    """Ask the model about an agreement and store the answer in ``ai_analysis``."""
    request = validate(AnalysisRequest, data)
    agreement = db.session.get(Agreement, request.agreementId)
    if agreement is None:
        raise NotFound(f"Agreement {request.agreementId} not found")

    today = date.today()
    context = analysis_context(agreement, request.analysisType, request.content, today)
    messages = [
        {'role': 'system', 'content': ANALYSIS_PROMPTS[request.analysisType].format(today=today)},
        {'role': 'user', 'content': json.dumps(context, default=str)},
    ]
    client = client or get_llm_client('deepseek')
    text = client.chat_completion(messages, temperature=0.4, max_tokens=2000)

    try:
        parsed = parse_json_response(text)
    except ValueError:
        parsed = None
    analysis = AIAnalysis(
        agreement_id=agreement.id,
        analysis_type=request.analysisType,
        content={'raw': text, 'result': parsed},
        status='completed',
        confidence_score=confidence_from_response(request.analysisType, text),
    )
    db.session.add(analysis)
    db.session.commit()
    logger.info("Stored %s analysis %s for agreement %s (confidence %.2f)",
                analysis.analysis_type, analysis.id, agreement.agreement_number,
                analysis.confidence_score)
    return analysis


# ---------------------------------------------------------------------------
# Vehicle recommendations

def recommendation_context(customer: Customer, rental_duration=None,
                           preferred_attributes=None) -> dict:
    history = []
    for agreement in customer.agreements:
        entry = agreement.to_dict()
        entry['vehicle'] = agreement.vehicle.to_dict() if agreement.vehicle else None
        history.append(entry)
    return {
        'customer': customer.to_dict(),
        'rentalHistory': history,
        'availableVehicles': [v.to_dict() for v in
                              Vehicle.query.filter_by(status=VehicleStatus.AVAILABLE).all()],
        'rentalDuration': rental_duration,
        'preferredAttributes': preferred_attributes,
    }


def recommend_vehicles(data: dict, client: LLMClient = None) -> AIRecommendation:
    """Ask the model which available vehicles suit a customer and keep the answer."""
    request = validate(RecommendationRequest, data)
    customer = db.session.get(Customer, request.customerId)
    if customer is None:
        raise NotFound(f"Customer {request.customerId} not found")

    preferences = (request.preferredAttributes.model_dump(exclude_none=True)
                   if request.preferredAttributes else None)
    context = recommendation_context(customer, request.rentalDuration, preferences)
    client = client or get_llm_client('deepseek')
    text = client.chat_completion(
        [{'role': 'system', 'content': RECOMMENDATION_PROMPT},
         {'role': 'user', 'content': json.dumps(context, default=str)}],
        temperature=0.2, max_tokens=2000)

    try:
        parsed = parse_json_response(text)
    except ValueError:
        parsed = None
    recommendation = AIRecommendation(
        customer_id=customer.id,
        recommendation_type='vehicle',
        content={'raw': text, 'result': parsed},
        preferred_attributes=preferences,
        status='completed',
    )
    db.session.add(recommendation)
    db.session.commit()
    logger.info("Stored vehicle recommendation %s for customer %s (%d vehicles available)",
                recommendation.id, customer.id, len(context['availableVehicles']))
    return recommendation


# ---------------------------------------------------------------------------
# Transliteration and quick status check

def transliterate(text, client: LLMClient = None) -> str:
    if not text or not isinstance(text, str) or not text.strip():
        raise ValidationFailed("Invalid input. Text must be a non-empty string.")
    client = client or get_llm_client('perplexity')
    logger.info("Transliterating %d characters", len(text))
    result = client.chat_completion(
        [{'role': 'system', 'content': TRANSLITERATION_PROMPT},
         {'role': 'user', 'content': f"Transliterate this text to English (romanized form): {text}"}],
        temperature=0.1, max_tokens=100)
    if not result:
        raise ExternalServiceError("Invalid response from transliteration service")
    return result


def count_changed_chars(original: str, processed: str) -> int:
    """Positions that differ, plus the difference in length."""
    changed = sum(1 for a, b in zip(original, processed) if a != b)
    return changed + abs(len(original) - len(processed))


def correct_arabic_text(data: dict, client: LLMClient = None) -> dict:
    """Have the model repair Arabic text that renders badly in PDF documents."""
    if not (data or {}).get('text'):
        raise ValidationFailed("No text provided for processing")
    request = validate(ArabicTextRequest, data)
    logger.info("Processing Arabic text of length %d characters", len(request.text))
    client = client or get_llm_client('deepseek')
    processed = client.chat_completion(
        [{'role': 'system', 'content': ARABIC_TEXT_PROMPT},
         {'role': 'user', 'content': (
             "I need to fix Arabic text rendering issues in a PDF document. "
             f"Context: {request.context}. Here is the text to correct: {request.text}")}],
        temperature=0.1)
    changed = count_changed_chars(request.text, processed)
    logger.info("Arabic text processed, %d characters changed", changed)
    return {'processedText': processed, 'success': True, 'correctedChars': changed}


def agreement_metrics(data: AgreementAnalysisData, today: date = None) -> dict:
    today = today or date.today()
    days_left = (data.end_date - today).days if data.end_date else None
    payments = data.payments or []
    paid = sum(1 for p in payments if p.get('status') == PaymentStatus.PAID)
    overdue = False
    for p in payments:
        if p.get('status') not in (PaymentStatus.PENDING, PaymentStatus.OVERDUE):
            continue
        due = p.get('due_date')
        if due and str(due)[:10] < today.isoformat():
            overdue = True
            break
    return {
        'days_until_expiration': days_left,
        'is_expired': days_left is not None and days_left < 0,
        'payment_rate': paid / len(payments) if payments else 0.0,
        'has_overdue_payments': overdue,
        'total_payments': len(payments),
        'paid_payments': paid,
    }


def recommend_status(current: str, metrics: dict) -> dict:
    """Rule-based answer used when the model reply cannot be parsed."""
    if metrics['is_expired'] and current == 'active':
        return {'recommendedStatus': 'expired', 'confidence': 0.9, 'riskLevel': 'medium',
                'explanation': 'The agreement end date has passed.',
                'actionItems': ['Close the agreement', 'Inspect and return the vehicle']}
    if metrics['has_overdue_payments']:
        risk = 'high' if metrics['payment_rate'] < 0.5 else 'medium'
        return {'recommendedStatus': current, 'confidence': 0.7, 'riskLevel': risk,
                'explanation': 'There are overdue payments on this agreement.',
                'actionItems': ['Contact the customer about overdue payments']}
    return {'recommendedStatus': current, 'confidence': 0.8, 'riskLevel': 'low',
            'explanation': 'Payments are up to date.', 'actionItems': []}


def analyze_agreement_status(agreement_data, client: LLMClient = None) -> dict:
    if not agreement_data:
        raise ValidationFailed("Invalid input. Agreement data is required.")
    data = validate(AgreementAnalysisData, agreement_data)
    metrics = agreement_metrics(data)
    logger.info("Analyzing agreement data for %s", data.id)

    prompt = (
        "Analyze this agreement data and recommend an appropriate status:\n"
        f"Current Status: {data.status}\n"
        f"Days Until Expiration: {metrics['days_until_expiration']}\n"
        f"Is Expired: {metrics['is_expired']}\n"
        f"Payment Rate: {metrics['payment_rate'] * 100:.1f}%\n"
        f"Has Overdue Payments: {metrics['has_overdue_payments']}\n"
        f"Total Amount: {data.total_amount}\n"
        f"Deposit Amount: {data.deposit_amount}\n"
        f"Number of Payments: {metrics['total_payments']}\n"
        f"Paid Payments: {metrics['paid_payments']}")
    client = client or get_llm_client('perplexity')
    text = client.chat_completion(
        [{'role': 'system', 'content': STATUS_CHECK_PROMPT}, {'role': 'user', 'content': prompt}],
        temperature=0.2, max_tokens=500)
    try:
        result = parse_json_response(text)
    except ValueError:
        logger.warning("Status check reply for %s was not JSON, using rules", data.id)
        result = recommend_status(data.status, metrics)

    result.update({
        'analyzedAt': utcnow().isoformat(),
        'agreementId': data.id,
        'currentStatus': data.status,
        'metrics': metrics,
    })
    return result

