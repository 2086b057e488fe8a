import io
import json
from datetime import date, timedelta

import pytest

from fleet_rental import ai
from fleet_rental.errors import ExternalServiceError
from fleet_rental.models import (AIAnalysis, AIRecommendation, Agreement, AgreementImport,
                                 ImportStatus, VehicleStatus, db)


class FakeLLM:
    """Stands in for ``ai.LLMClient``: replays a canned reply and records the prompts."""

    def __init__(self, reply='', error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def chat_completion(self, messages, temperature=0.2, max_tokens=1500):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def fake_llm(monkeypatch):
    llm = FakeLLM()
    providers = []

    def get_client(provider):
        providers.append(provider)
        return llm

    monkeypatch.setattr(ai, 'get_llm_client', get_client)
    llm.providers = providers
    return llm


class TestAIAnalysis:
    def test_status_recommendation_stored(self, client, rental, fake_llm):
        fake_llm.reply = json.dumps({'recommendedStatus': 'active', 'confidence': 0.72,
                                     'reasoning': 'Paid up', 'actionItems': []})
        response = client.post('/functions/ai-analysis',
                               json={'agreementId': rental.id,
                                     'analysisType': 'status_recommendation'})
        assert response.status_code == 200
        body = response.get_json()
        assert body['analysis_type'] == 'status_recommendation'
        assert body['confidence_score'] == pytest.approx(0.72)
        assert body['content']['result']['recommendedStatus'] == 'active'
        assert fake_llm.providers == ['deepseek']

        stored = AIAnalysis.query.one()
        assert stored.agreement_id == rental.id
        system, user = fake_llm.calls[0]
        assert 'recommend the optimal status' in system['content']
        assert json.loads(user['content'])['agreement']['id'] == rental.id

    def test_score_scaled_to_unit_interval(self, client, rental, fake_llm):
        fake_llm.reply = "Here you go:\n```json\n{\"overallRiskScore\": 40}\n```"
        response = client.post('/functions/ai-analysis',
                               json={'agreementId': rental.id, 'analysisType': 'risk_assessment'})
        assert response.get_json()['confidence_score'] == pytest.approx(0.4)

    def test_prose_reply_uses_default_confidence(self, client, rental, fake_llm):
        fake_llm.reply = "The agreement looks healthy."
        response = client.post('/functions/ai-analysis',
                               json={'agreementId': rental.id,
                                     'analysisType': 'payment_prediction'})
        body = response.get_json()
        assert body['confidence_score'] == pytest.approx(0.85)
        assert body['content']['result'] is None

    def test_invalid_analysis_type(self, client, rental, fake_llm):
        response = client.post('/functions/ai-analysis',
                               json={'agreementId': rental.id, 'analysisType': 'horoscope'})
        assert response.status_code == 400
        assert 'analysisType' in response.get_json()['error']
        assert fake_llm.calls == []

    def test_unknown_agreement(self, client, fake_llm):
        response = client.post('/functions/ai-analysis',
                               json={'agreementId': 42, 'analysisType': 'agreement_health'})
        assert response.status_code == 404

    def test_upstream_failure_is_500(self, client, rental, fake_llm):
        fake_llm.error = ExternalServiceError("LLM request failed: timeout")
        response = client.post('/functions/ai-analysis',
                               json={'agreementId': rental.id,
                                     'analysisType': 'status_recommendation'})
        assert response.status_code == 500
        assert 'timeout' in response.get_json()['error']
        assert AIAnalysis.query.count() == 0


class TestTranslateText:
    def test_transliteration(self, client, fake_llm):
        fake_llm.reply = 'Mohammed'
        response = client.post('/functions/translate-text', json={'text': 'محمد'})
        assert response.status_code == 200
        assert response.get_json() == {'translatedText': 'Mohammed'}
        assert fake_llm.providers == ['perplexity']

    @pytest.mark.parametrize('body', [{}, {'text': ''}, {'text': '   '}, {'text': 42}])
    def test_invalid_text(self, client, fake_llm, body):
        response = client.post('/functions/translate-text', json=body)
        assert response.status_code == 400
        assert response.get_json()['error'].startswith('Invalid input')

    def test_status_analysis_model_reply(self, client, fake_llm):
        fake_llm.reply = ('{"recommendedStatus": "active", "confidence": 0.9, '
                          '"explanation": "ok", "riskLevel": "low", "actionItems": []}')
        response = client.post('/functions/translate-text', json={
            'mode': 'agreement_analysis',
            'agreementData': {'id': 'abc', 'status': 'active',
                              'end_date': (date.today() + timedelta(days=30)).isoformat(),
                              'payments': [{'status': 'paid'}, {'status': 'paid'}]},
        })
        body = response.get_json()
        assert body['recommendedStatus'] == 'active'
        assert body['agreementId'] == 'abc'
        assert body['currentStatus'] == 'active'
        assert body['metrics']['payment_rate'] == 1.0
        assert body['metrics']['days_until_expiration'] == 30
        assert 'analyzedAt' in body

    def test_status_analysis_falls_back_to_rules(self, client, fake_llm):
        fake_llm.reply = 'I cannot answer that.'
        response = client.post('/functions/translate-text', json={
            'mode': 'agreement_analysis',
            'agreementData': {'id': 7, 'status': 'active',
                              'end_date': (date.today() - timedelta(days=3)).isoformat()},
        })
        body = response.get_json()
        assert body['recommendedStatus'] == 'expired'
        assert body['metrics']['is_expired'] is True

    def test_status_analysis_requires_data(self, client, fake_llm):
        response = client.post('/functions/translate-text', json={'mode': 'agreement_analysis'})
        assert response.status_code == 400


class TestProcessImports:
    def test_requires_import_id(self, client):
        assert client.post('/functions/process-agreement-imports', json={}).status_code == 400
        response = client.post('/functions/process-agreement-imports', json={'importId': 99})
        assert response.status_code == 400

    def test_processes_uploaded_file(self, client, make_customer, make_vehicle):
        customer, vehicle = make_customer(), make_vehicle()
        content = ("Customer ID,Vehicle ID,Start Date,End Date,Rent Amount\n"
                   f"{customer.id},{vehicle.id},2024-01-01,2024-06-30,3000\n")
        upload = client.post('/api/admin/imports', data={
            'file': (io.BytesIO(content.encode('utf-8')), 'leases.csv'),
            'process': 'false',
        }, content_type='multipart/form-data')
        assert upload.status_code == 201
        import_id = upload.get_json()['import']['id']
        assert Agreement.query.count() == 0

        response = client.post('/functions/process-agreement-imports',
                               json={'importId': import_id})
        assert response.status_code == 200
        assert response.get_json()['processed'] == 1
        assert db.session.get(AgreementImport, import_id).status == ImportStatus.COMPLETED
        assert Agreement.query.count() == 1


class TestArabicText:
    def test_corrected_text_and_changed_chars(self, client, fake_llm):
        fake_llm.reply = 'مرحبا بكم'
        response = client.post('/functions/process-arabic-text',
                               json={'text': 'مرحيا بكم', 'context': 'Legal report'})
        assert response.status_code == 200
        assert response.get_json() == {'processedText': 'مرحبا بكم', 'success': True,
                                        'correctedChars': 1}
        assert fake_llm.providers == ['deepseek']
        system, user = fake_llm.calls[0]
        assert 'Arabic text rendering' in system['content']
        assert 'Context: Legal report.' in user['content']

    def test_default_context(self, client, fake_llm):
        fake_llm.reply = 'نص'
        client.post('/functions/process-arabic-text', json={'text': 'نص'})
        assert 'Context: PDF report with Arabic text.' in fake_llm.calls[0][1]['content']

    def test_length_change_counts(self):
        assert ai.count_changed_chars('abc', 'abxde') == 3
        assert ai.count_changed_chars('', 'ab') == 2

    @pytest.mark.parametrize('body', [{}, {'text': ''}, {'text': None}])
    def test_missing_text(self, client, fake_llm, body):
        response = client.post('/functions/process-arabic-text', json=body)
        assert response.status_code == 400
        assert response.get_json()['error'] == 'No text provided for processing'
        assert fake_llm.calls == []

    def test_upstream_failure_is_500(self, client, fake_llm):
        fake_llm.error = ExternalServiceError("LLM request failed: 503")
        response = client.post('/functions/process-arabic-text', json={'text': 'نص'})
        assert response.status_code == 500


class TestVehicleRecommendation:
    def test_recommendation_stored(self, client, rental, make_vehicle, fake_llm):
        free = make_vehicle(make='Nissan')
        make_vehicle(status=VehicleStatus.MAINTENANCE)
        fake_llm.reply = json.dumps({
            'recommendations': [{'vehicleId': str(free.id), 'score': 0.9, 'reasoning': 'Fits'}],
            'customerInsights': 'Prefers sedans',
        })
        response = client.post('/functions/ai-vehicle-recommendation', json={
            'customerId': rental.customer_id,
            'rentalDuration': 30,
            'preferredAttributes': {'type': 'sedan', 'features': ['gps']},
        })
        assert response.status_code == 200
        body = response.get_json()
        assert body['customer_id'] == rental.customer_id
        assert body['recommendation_type'] == 'vehicle'
        assert body['status'] == 'completed'
        assert body['preferred_attributes'] == {'type': 'sedan', 'features': ['gps']}
        assert body['content']['result']['customerInsights'] == 'Prefers sedans'
        assert fake_llm.providers == ['deepseek']
        assert AIRecommendation.query.count() == 1

        context = json.loads(fake_llm.calls[0][1]['content'])
        assert [v['id'] for v in context['availableVehicles']] == [free.id]
        assert [a['id'] for a in context['rentalHistory']] == [rental.id]
        assert context['rentalHistory'][0]['vehicle']['id'] == rental.vehicle_id
        assert context['rentalDuration'] == 30

    def test_prose_reply_kept_raw(self, client, make_customer, fake_llm):
        fake_llm.reply = 'Any compact car will do.'
        response = client.post('/functions/ai-vehicle-recommendation',
                               json={'customerId': make_customer().id})
        body = response.get_json()
        assert body['content'] == {'raw': 'Any compact car will do.', 'result': None}
        assert body['preferred_attributes'] is None

    def test_unknown_customer(self, client, fake_llm):
        response = client.post('/functions/ai-vehicle-recommendation', json={'customerId': 404})
        assert response.status_code == 404
        assert fake_llm.calls == []

    def test_invalid_duration(self, client, make_customer, fake_llm):
        response = client.post('/functions/ai-vehicle-recommendation',
                               json={'customerId': make_customer().id, 'rentalDuration': 0})
        assert response.status_code == 400
        assert 'rentalDuration' in response.get_json()['error']
