from . import admin, agreements, customers, dashboard, fines, functions, legal, maintenance, payments, vehicles

BLUEPRINTS = (
    vehicles.bp,
    customers.bp,
    agreements.bp,
    payments.bp,
    payments.plans_bp,
    fines.bp,
    maintenance.bp,
    legal.bp,
    admin.bp,
    functions.bp,
    dashboard.bp,
)


def register_blueprints(app):
    for blueprint in BLUEPRINTS:
        app.register_blueprint(blueprint)
