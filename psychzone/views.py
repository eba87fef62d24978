from django.http import JsonResponse


def error_404_view(request, exception):
    # API-only project: unknown routes answer in the same JSON shape as the endpoints
    return JsonResponse({"ok": False, "error": "Not found"}, status=404)


def error_500_view(request):
    return JsonResponse({"ok": False, "error": "Internal server error"}, status=500)
