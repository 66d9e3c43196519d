from pricing_pdf_web.app_factory import create_app

if __name__ == "__main__":
    app = create_app()
    # the reloader would start a second event loop and browser per process
    app.run(host=app.config["HOST"], port=app.config["PORT"], debug=app.config["DEBUG"], use_reloader=False)
