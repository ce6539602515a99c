from fastapi import APIRouter, Depends

from backend.routes.question_routes import get_question_service
from backend.services.question_service import QuestionService

router = APIRouter(tags=['categories'])


@router.get('')
def list_categories(service: QuestionService = Depends(get_question_service)):
    categories = service.categories()
    return {
        'success': True,
        'topics': categories['topic'],
        'companies': categories['company'],
        'roles': categories['role'],
    }
