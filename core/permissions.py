"""
Custom permission classes for the Clothing Swap marketplace.

Trade and chat participation is enforced by the trade, chat and review
operations themselves so that the check always runs before any state rule.
"""

from rest_framework import permissions


class IsOwnerOrReadOnly(permissions.BasePermission):
    """
    Object-level permission: anyone authenticated may read a listing, only
    its owner may change or delete it.

    Usage:
        class ClothingItemDetailView(RetrieveUpdateDestroyAPIView):
            permission_classes = [IsAuthenticated, IsOwnerOrReadOnly]
    """

    message = 'Only the owner of this listing can modify it.'

    def has_object_permission(self, request, view, obj):
        """
        Args:
            request: HTTP request object
            view: View being accessed
            obj: ClothingItem instance

        Returns:
            bool: True for safe methods or when the user owns the item
        """
        if request.method in permissions.SAFE_METHODS:
            return True

        return obj.owner_id == request.user.id
