import copy
import json
import os
import tempfile
import unittest
from dataclasses import replace
from pathlib import Path
from unittest import mock

import contotermico.api.server as server
from contotermico.api.server import app
from contotermico.incentive.config import DEFAULT_GSE_CONFIG

BODY = {
    "user_type": "privato",
    "climate_zone": "D",
    "old_system": {"type": "gasolio", "year": 1995, "estimated_power_kw": 12},
    "new_system": {"type": "pompa_di_calore", "power_kw": 10, "has_storage": False, "efficiency_class": "A++"},
    "costs": {"total_estimated_cost": 12000},
}


class TestSimulationsAPI(unittest.TestCase):
    def setUp(self):
        app.testing = True
        # Clear API key, rate limiter and config state to avoid cross-test leakage
        app.config['API_KEY'] = None
        app.config['RATE_LIMIT_N'] = 0
        app.config['GSE_CONFIG'] = DEFAULT_GSE_CONFIG
        server._recent.clear()
        self.client = app.test_client()

    def test_health(self):
        rv = self.client.get('/health')
        self.assertEqual(rv.status_code, 200)
        self.assertEqual(rv.get_json(), {'status': 'ok'})

    def test_post_simulation(self):
        rv = self.client.post('/simulations', json=BODY)
        self.assertEqual(rv.status_code, 200)
        body = rv.get_json()
        res = body['result']
        self.assertAlmostEqual(res['final_incentive'], 10565.48, places=2)
        self.assertEqual(res['payment_mode'], 'rate_annuali')
        self.assertEqual(res['payment_years'], 2)
        self.assertEqual(body['input']['climate_zone'], 'D')

    def test_public_entity_five_years(self):
        b = copy.deepcopy(BODY)
        b['user_type'] = 'ente_pubblico'
        b['costs']['total_estimated_cost'] = 40000
        res = self.client.post('/simulations', json=b).get_json()['result']
        self.assertEqual(res['payment_years'], 5)

    def test_invalid_input_400(self):
        b = copy.deepcopy(BODY)
        b['old_system']['year'] = 1960
        rv = self.client.post('/simulations', json=b)
        self.assertEqual(rv.status_code, 400)
        body = rv.get_json()
        self.assertEqual(body['error'], 'invalid_input')
        self.assertEqual([i['field'] for i in body['issues']], ['old_system.year'])

    def test_unknown_enum_400(self):
        b = copy.deepcopy(BODY)
        b['climate_zone'] = 'Z'
        rv = self.client.post('/simulations', json=b)
        self.assertEqual(rv.status_code, 400)
        self.assertEqual(rv.get_json()['issues'][0]['field'], 'climate_zone')

    def test_empty_body_400(self):
        rv = self.client.post('/simulations', data='not json')
        self.assertEqual(rv.status_code, 400)

    def test_configuration_error_422(self):
        app.config['GSE_CONFIG'] = replace(DEFAULT_GSE_CONFIG, system_multiplier={})
        rv = self.client.post('/simulations', json=BODY)
        self.assertEqual(rv.status_code, 422)
        body = rv.get_json()
        self.assertEqual(body['error'], 'configuration_error')
        self.assertIn('system_multiplier', body['detail'])

    def test_validate_endpoint(self):
        rv = self.client.post('/simulations/validate', json=BODY)
        self.assertEqual(rv.get_json(), {'valid': True, 'issues': []})
        b = copy.deepcopy(BODY)
        b['new_system']['power_kw'] = 0
        body = self.client.post('/simulations/validate', json=b).get_json()
        self.assertFalse(body['valid'])
        self.assertEqual(body['issues'][0]['field'], 'new_system.power_kw')

    def test_config_loaded_from_env_path(self):
        data = DEFAULT_GSE_CONFIG.to_dict()
        data['max_incentive']['privato'] = 9000
        with tempfile.TemporaryDirectory() as tmp:
            p = Path(tmp) / 'gse.json'
            p.write_text(json.dumps(data))
            app.config['GSE_CONFIG'] = None
            with mock.patch.dict(os.environ, {'GSE_CONFIG_PATH': str(p)}):
                res = self.client.post('/simulations', json=BODY).get_json()['result']
        self.assertEqual(res['final_incentive'], 9000)
        self.assertEqual(self.client.get('/config').get_json()['max_incentive']['privato'], 9000)

    def test_config_endpoint(self):
        rv = self.client.get('/config')
        self.assertEqual(rv.status_code, 200)
        cfg = rv.get_json()
        self.assertEqual(cfg['max_incentive']['privato'], 15000)
        self.assertEqual(cfg['old_system_multiplier']['by_age'][1]['year_cutoff'], 1990)

    def test_broken_config_file_422(self):
        with tempfile.TemporaryDirectory() as tmp:
            p = Path(tmp) / 'gse.json'
            p.write_text('{"base_percentage": {')
            app.config['GSE_CONFIG'] = None
            with mock.patch.dict(os.environ, {'GSE_CONFIG_PATH': str(p)}):
                rv = self.client.post('/simulations', json=BODY)
                self.assertEqual(rv.status_code, 422)
                self.assertEqual(rv.get_json()['error'], 'configuration_error')
                self.assertEqual(self.client.get('/config').status_code, 422)
            data = DEFAULT_GSE_CONFIG.to_dict()
            data['old_system_multiplier']['by_age'] = 5
            p.write_text(json.dumps(data))
            with mock.patch.dict(os.environ, {'GSE_CONFIG_PATH': str(p)}):
                self.assertEqual(self.client.post('/simulations', json=BODY).status_code, 422)

    def test_overflowing_number_400(self):
        raw = json.dumps(BODY).replace('"year": 1995', '"year": 1e400')
        rv = self.client.post('/simulations', data=raw, content_type='application/json')
        self.assertEqual(rv.status_code, 400)
        self.assertEqual([i['field'] for i in rv.get_json()['issues']], ['old_system.year'])

    def test_all_issues_reported(self):
        b = copy.deepcopy(BODY)
        b['costs'] = {}
        b['old_system']['year'] = 1960
        body = self.client.post('/simulations', json=b).get_json()
        self.assertEqual(
            [i['field'] for i in body['issues']],
            ['costs.total_estimated_cost', 'old_system.year'],
        )


class TestAPIGuards(unittest.TestCase):
    def setUp(self):
        app.testing = True
        app.config['API_KEY'] = None
        app.config['GSE_CONFIG'] = DEFAULT_GSE_CONFIG
        server._recent.clear()
        self.client = app.test_client()

    def test_rate_limit_post_simulations(self):
        app.config['RATE_LIMIT_N'] = 1
        app.config['RATE_LIMIT_WINDOW_SEC'] = 60.0
        rv1 = self.client.post('/simulations', json=BODY)
        self.assertEqual(rv1.status_code, 200)
        rv2 = self.client.post('/simulations', json=BODY)
        self.assertEqual(rv2.status_code, 429)
        self.assertEqual(rv2.get_json().get('error'), 'rate_limited')
        self.assertIn('Retry-After', rv2.headers)
        # validation is not rate limited
        rv3 = self.client.post('/simulations/validate', json=BODY)
        self.assertEqual(rv3.status_code, 200)

    def test_auth_api_key(self):
        app.config['RATE_LIMIT_N'] = 0
        app.config['API_KEY'] = 'secret'
        self.assertEqual(self.client.post('/simulations', json=BODY).status_code, 401)
        self.assertEqual(self.client.get('/config').status_code, 401)
        rv = self.client.post('/simulations', json=BODY, headers={'X-API-Key': 'secret'})
        self.assertEqual(rv.status_code, 200)
        # health stays open
        self.assertEqual(self.client.get('/health').status_code, 200)

    def tearDown(self):
        app.config['API_KEY'] = None
        app.config['RATE_LIMIT_N'] = 0


if __name__ == '__main__':
    unittest.main()
