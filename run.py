# /run.py
import sys

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from sqlalchemy.exc import SQLAlchemyError

# Now, import the app factory
from wetreat import create_app, check_store

# Create the app instance
app = create_app()

if __name__ == '__main__':
    # The store must be reachable at startup; a supervisor is expected to restart us
    try:
        check_store(app)
    except SQLAlchemyError as e:
        app.logger.error(f"Database connection error: {e}")
        sys.exit(1)

    print(f"Starting server on port {app.config['PORT']}...")
    app.run(host='0.0.0.0', port=app.config['PORT'], debug=app.debug)
