# Overview: Pytest coverage for the Flask CLI commands.

from maroc_billing.models import Company, Invoice, Product, StockLocation


class TestCompanyCommands:

    def test_create_company(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=['companies', 'create', '--name', 'Souss Import', '--code', 'SOUSS'])

        assert 'PASS Created company' in result.output
        company = db_session.query(Company).filter_by(code='SOUSS').one()
        assert company.currency == 'MAD'
        assert db_session.query(StockLocation).filter_by(company_id=company.id, is_default=True).count() == 1

    def test_duplicate_code(self, app, db_session, company_a):
        runner = app.test_cli_runner()

        result = runner.invoke(args=['companies', 'create', '--name', 'Autre', '--code', 'ATLAS'])

        assert 'FAIL' in result.output
        assert db_session.query(Company).count() == 1

    def test_list(self, app, db_session, company_a):
        result = app.test_cli_runner().invoke(args=['companies', 'list'])
        assert 'Atlas SARL' in result.output


class TestBillingCommands:

    def test_sweep_overdue(self, app, db_session, sent_invoice):
        result = app.test_cli_runner().invoke(args=['billing', 'sweep-overdue', '--now', '2099-01-01'])

        assert result.exit_code == 0
        assert 'PASS 1 invoices marked overdue' in result.output
        db_session.expire_all()
        assert db_session.get(Invoice, sent_invoice.id).status == 'overdue'

    def test_expire_quotes_nothing_to_do(self, app, db_session, company_a):
        result = app.test_cli_runner().invoke(args=['billing', 'expire-quotes'])

        assert result.exit_code == 0
        assert 'PASS 0 quotes expired' in result.output


class TestStockCommands:

    def test_verify_ledger(self, app, db_session, company_a, product_a):
        result = app.test_cli_runner().invoke(args=['stock', 'verify-ledger', '--company-id', str(company_a.id)])

        assert result.exit_code == 0
        assert f'PASS product {product_a.id}: stock 10' in result.output

    def test_verify_ledger_reports_drift(self, app, db_session, company_a, product_a):
        db_session.get(Product, product_a.id).current_stock = 99
        db_session.commit()

        result = app.test_cli_runner().invoke(args=['stock', 'verify-ledger', '--company-id', str(company_a.id)])

        assert result.exit_code == 1
        assert f'FAIL product {product_a.id}' in result.output
